"""installwizard CLI - Step catalog and session status commands."""

import json
import sys

import click

from installwizard.catalog import DEFAULT_STEPS, load_steps
from installwizard.config import get_config
from installwizard.persistence import SessionStateFile


@click.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def steps(output_json: bool) -> None:
    """List the wizard steps in order."""
    config = get_config()
    try:
        definitions = load_steps(config.steps_file) if config.steps_file else DEFAULT_STEPS
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps([d.model_dump() for d in definitions], indent=2))
        return

    for index, definition in enumerate(definitions, start=1):
        flags = []
        if definition.can_skip:
            flags.append("skippable")
        if not definition.can_retry:
            flags.append("no retry")
        suffix = f" ({', '.join(flags)})" if flags else ""
        click.echo(f"{index}. {definition.name} [{definition.id}]{suffix}")
        if definition.description:
            click.echo(f"   {definition.description}")


@click.command()
@click.option("--clear", is_flag=True, help="Delete the recorded session")
@click.option("--json", "output_json", is_flag=True, help="Output the raw session as JSON")
def status(clear: bool, output_json: bool) -> None:
    """Show the last recorded installation session."""
    state_file = SessionStateFile(get_config().get_state_path())

    if clear:
        if state_file.clear():
            click.echo(f"✓ Removed {state_file.path}")
        else:
            click.echo("No installation session recorded.")
        return

    if output_json:
        session = state_file.load()
        if session is None:
            click.echo("null")
            return
        click.echo(session.model_dump_json(indent=2))
        return

    click.echo(state_file.summary(color=sys.stdout.isatty()))
