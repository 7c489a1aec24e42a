"""CLI entry point for pairbridge."""

from pathlib import Path

import click

from pairbridge import __version__
from pairbridge.config import load_config, validate_config
from pairbridge.errors import ConfigError
from pairbridge.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """pairbridge - Pair a messaging session from the browser and export its credentials."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Port to listen on.")
@click.option(
    "--service",
    "-s",
    default=None,
    help="Session service factory as module:attribute.",
)
@click.option("--no-qr", is_flag=True, help="Do not print QR codes in the terminal.")
@click.pass_context
def serve(ctx: click.Context, port: int | None, service: str | None, no_qr: bool) -> None:
    """Serve observers until the credentials are exported."""
    import asyncio

    from pairbridge.bridge import Bridge, StartupError
    from pairbridge.qr import render_terminal
    from pairbridge.service import load_session_service

    config = ctx.obj["config"]
    if port is not None:
        config.port = port
        try:
            validate_config(config)
        except ConfigError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
    if no_qr:
        config.pairing.print_qr_in_terminal = False

    target = service or config.session_service
    if not target:
        click.echo(
            "Error: No session service configured. "
            "Set session_service in the config file or pass --service.",
            err=True,
        )
        raise SystemExit(1)

    try:
        session_service = load_session_service(target)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    def render_qr(data: str) -> None:
        click.echo(render_terminal(data))

    qr_renderer = render_qr if config.pairing.print_qr_in_terminal else None

    async def _serve() -> bool:
        bridge = Bridge(config=config, service=session_service, qr_renderer=qr_renderer)
        try:
            await bridge.start()
        except StartupError as e:
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)

        click.echo(f"Server running at http://localhost:{bridge.server.get_port()}")
        click.echo("Connect an observer and submit a phone number to begin pairing.")
        return await bridge.run()

    try:
        exported = asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
        return

    if exported:
        click.echo("Credentials exported.")
        raise SystemExit(0)


@main.command()
@click.argument("phone")
def validate(phone: str) -> None:
    """Check PHONE against the known calling codes."""
    from pairbridge.errors import ValidationError
    from pairbridge.pairing.validator import PhoneValidator

    try:
        normalized = PhoneValidator().validate(phone)
    except ValidationError as e:
        click.echo(f"Invalid ({e.reason}): {e}", err=True)
        raise SystemExit(1)

    click.echo(normalized)


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"pairbridge version {__version__}")
