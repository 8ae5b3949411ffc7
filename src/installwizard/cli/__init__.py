"""
installwizard CLI - Guided installation of Node.js and the Claude CLI.

Commands:
    installwizard check     Check whether a component is installed
    installwizard install   Install a component with elevated privileges
    installwizard cancel    Request cancellation of a component install
    installwizard steps     List the wizard steps
    installwizard status    Show the last recorded installation session
"""

import click

from installwizard.config import get_config
from installwizard.logger import configure_logging

from .install import cancel, check
from .install import install as install_command
from .session import status, steps


@click.group()
@click.version_option()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Logging level (default: INSTALLWIZARD_LOG_LEVEL or warning)",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Log output format",
)
def main(log_level, log_format):
    """installwizard - Step-by-step installer for Node.js and the Claude CLI."""
    config = get_config()
    configure_logging(log_level or config.log_level, log_format or config.log_format)


main.add_command(check)
main.add_command(install_command)
main.add_command(cancel)
main.add_command(steps)
main.add_command(status)


if __name__ == "__main__":
    main()
