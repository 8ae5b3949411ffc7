"""installwizard CLI - Component check, install and cancel commands."""

import asyncio
import json
import sys
from typing import Optional

import click

from installwizard.channel import EventChannel, Notification, NotificationType
from installwizard.components import COMPONENTS
from installwizard.config import InstallWizardConfig, get_config
from installwizard.errors import InstallWizardError
from installwizard.installer import create_installer
from installwizard.models import InstallationSession
from installwizard.persistence import SessionStateFile

_COMPONENT = click.Choice(sorted(COMPONENTS))


def _resumable_session(config: InstallWizardConfig) -> Optional[InstallationSession]:
    """
    The persisted session if a later command can continue it.

    Sessions that ended, or that were left with a running step by a crashed
    process, are not resumed.
    """
    session = SessionStateFile(config.get_state_path()).load()
    if session is None or session.status.is_terminal:
        return None
    if any(step.is_running for step in session.steps):
        return None
    return session


def _render(notification: Notification) -> Optional[str]:
    step = notification.step
    if notification.type is NotificationType.STEP_STARTED:
        return click.style(f"→ {step.name}", bold=True)
    if notification.type is NotificationType.STEP_PROGRESS:
        return f"  [{step.progress:3.0f}%] {step.message}"
    if notification.type is NotificationType.STEP_COMPLETED:
        return click.style(f"✓ {step.name}: {step.message}", fg="green")
    if notification.type is NotificationType.STEP_FAILED:
        line = click.style(f"✗ {step.name}: {step.message}", fg="red")
        if step.details:
            line += "\n" + click.style(f"  {step.details}", dim=True)
        return line
    if notification.type is NotificationType.STEP_RESET:
        return click.style(f"↻ Retrying {step.name} (attempt {step.retry_count + 1})", fg="yellow")
    if notification.type is NotificationType.SESSION_FAILED:
        return click.style("Installation session failed", fg="red", bold=True)
    return None


async def _print_notifications(channel: EventChannel, output_json: bool) -> None:
    async for notification in channel:
        if output_json:
            click.echo(notification.model_dump_json(exclude_none=True))
            continue
        line = _render(notification)
        if line:
            click.echo(line)


@click.command()
@click.argument("component", type=_COMPONENT)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def check(component: str, output_json: bool) -> None:
    """Check whether COMPONENT is installed.

    Exits 1 when the component is not installed.

    Examples:
        installwizard check nodejs
        installwizard check claude-cli --json
    """
    config = get_config()
    engine = create_installer(config)
    result = asyncio.run(engine.check(component))

    if output_json:
        click.echo(json.dumps(result, indent=2))
    else:
        name = COMPONENTS[component].display_name
        if result["installed"]:
            version = f" {result['version']}" if result.get("version") else ""
            npm = f" (npm {result['npmVersion']})" if result.get("npmVersion") else ""
            click.echo(click.style(f"✓ {name}{version}{npm}", fg="green"))
        else:
            click.echo(click.style(f"✗ {name} is not installed", fg="red"))

    if not result["installed"]:
        sys.exit(1)


@click.command()
@click.argument("component", type=_COMPONENT)
@click.option("--json", "output_json", is_flag=True, help="Stream notifications and the result as JSON lines")
@click.option(
    "--no-simulate-delay",
    is_flag=True,
    help="Do not pause between progress events",
)
def install(component: str, output_json: bool, no_simulate_delay: bool) -> None:
    """Install COMPONENT with administrator privileges.

    Progress is printed as it is reported by the installer script. A failed
    install can be retried by running the command again.

    Examples:
        installwizard install nodejs
        installwizard install claude-cli --json --no-simulate-delay
    """
    config = get_config()

    async def run() -> dict:
        channel = EventChannel(maxsize=config.channel_maxsize)
        engine = create_installer(config, channel=channel, session=_resumable_session(config))
        printer = asyncio.create_task(_print_notifications(channel, output_json))
        try:
            return await engine.start_install(component, {"simulate_delay": not no_simulate_delay})
        finally:
            await engine.close()
            await printer

    try:
        result = asyncio.run(run())
    except InstallWizardError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(result))
    elif result["success"]:
        click.echo(click.style(f"{COMPONENTS[component].display_name} installed.", fg="green"))
    else:
        click.echo(f"Installation failed: {result.get('error')}", err=True)

    if not result["success"]:
        sys.exit(1)


@click.command()
@click.argument("component", type=_COMPONENT)
def cancel(component: str) -> None:
    """Request cancellation of a COMPONENT install.

    The recorded session is marked cancelled so later installs start a new
    one. A script that is already running is not interrupted.
    """
    config = get_config()
    session = SessionStateFile(config.get_state_path()).load()
    if session is None or session.status.is_terminal:
        click.echo("No installation in progress.")
        return

    engine = create_installer(config, session=session)

    async def run() -> dict:
        try:
            return await engine.cancel(component)
        finally:
            await engine.close()

    result = asyncio.run(run())
    if result["success"]:
        click.echo("Cancellation recorded; a running installer script will finish on its own.")
