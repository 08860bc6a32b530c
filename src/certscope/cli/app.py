"""Unified CLI entry point for certscope.

Config precedence: settings.default.toml -> settings.{env}.toml -> settings.local.toml -> env vars (CERTSCOPE_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from certscope.cli.cert_cmd import batch_certificates, check_certificate, show_certificate
from certscope.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("certscope")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "certscope: inspect the TLS certificates served by remote hosts. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (CERTSCOPE_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("show")(show_certificate)
app.command("check")(check_certificate)
app.command("batch")(batch_certificates)
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging; show help when no subcommand is provided."""
    if version:
        typer.echo(f"certscope {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    from pydantic import ValidationError

    from certscope.logging_setup import configure_logging

    level = "DEBUG" if verbose else None
    try:
        configure_logging(level=level)
    except ValidationError:
        # Broken settings are reported by the command itself (see `settings validate`)
        configure_logging(level=level or "INFO", json_format=False)


if __name__ == "__main__":
    app()
