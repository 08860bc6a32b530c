"""CLI commands for inspecting and validating certscope settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate certscope configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the resolved settings as JSON."""
    from certscope.settings import get_settings

    console.print_json(json.dumps(get_settings().model_dump(mode="json"), default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Load settings and report the config layers and fetch options in effect."""
    from pydantic import ValidationError

    from certscope.settings import config

    try:
        settings = config.get_settings()
    except ValidationError as exc:
        console.print(f"[red]✗[/red] Settings validation failed ({exc.error_count()} error(s)):")
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "settings"
            console.print(f"  {location}: {error['msg']}", markup=False)
        raise typer.Exit(code=1) from None

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Config directory: {config.CONFIG_DIR}", markup=False)
    loaded = config.config_files(settings.env)
    if not loaded:
        console.print("  Config files: none found, using built-in defaults")
    for path in loaded:
        console.print(f"  Config file: {path.name}", markup=False)
    console.print(f"  Fetch mode: {settings.fetch.mode}")
    console.print(f"  Fingerprint algorithm: {settings.fetch.fingerprint_algorithm}")
    console.print(f"  Timeout: {settings.fetch.timeout_sec}s, default port {settings.fetch.default_port}")
    console.print(f"  Batch workers: {settings.batch.max_workers}")
    if settings.fetch.mode == "inspect":
        console.print("  [yellow]Peer verification is off; use --verify or fetch.mode = \"verify\" to enable it.[/yellow]")
