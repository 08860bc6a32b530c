"""CLI commands for downloading and checking certificates."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from certscope.exceptions import CertScopeError

console = Console()


def _build_downloader(port: Optional[int], ip: Optional[str], timeout: Optional[float], verify: bool):
    from certscope.fetcher import ConnectionMode, Downloader

    downloader = Downloader(port=port, timeout=timeout, ip_address=ip)
    if verify:
        downloader.with_mode(ConnectionMode.VERIFY)
    return downloader


def _fail(exc: Exception) -> None:
    console.print(f"[red]✗[/red] {type(exc).__name__}: {exc}")
    raise typer.Exit(code=1)


def _certificate_table(summary: dict, title: str) -> Table:
    table = Table(title=title, show_header=False, title_justify="left")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in summary.items():
        if isinstance(value, list):
            value = ", ".join(value)
        elif isinstance(value, bool):
            value = "[green]yes[/green]" if value else "[red]no[/red]"
        table.add_row(key.replace("_", " "), str(value))
    return table


def show_certificate(
    host: str = typer.Argument(..., help="Host name or URL to inspect."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to connect to when HOST does not name one."),
    ip: Optional[str] = typer.Option(None, "--ip", help="Connect to this IP address, still sending HOST as SNI."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Timeout in seconds."),
    chain: bool = typer.Option(False, "--chain", help="Show every certificate in the chain."),
    verify: bool = typer.Option(False, "--verify", help="Verify the chain against the system trust store and HOST against the leaf's SAN entries."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Download and display the certificate served by HOST."""
    downloader = _build_downloader(port, ip, timeout, verify)
    try:
        result = downloader.download(host)
    except CertScopeError as exc:
        _fail(exc)

    certificates = result.certificates if chain else result.certificates[:1]
    now = datetime.now(timezone.utc)

    if json_output:
        payload = {
            "host": result.hostname,
            "remote_address": result.remote_address,
            "certificates": [certificate.to_dict(now) for certificate in certificates],
        }
        console.print_json(json.dumps(payload, default=str))
        return

    console.print(Panel(f"[bold]{result.hostname}[/bold] served by {result.remote_address}", border_style="blue"))
    for index, certificate in enumerate(certificates):
        title = "Leaf certificate" if index == 0 else f"Chain certificate #{index}"
        console.print(_certificate_table(certificate.to_dict(now), title))


def check_certificate(
    host: str = typer.Argument(..., help="Host name or URL to check."),
    days: int = typer.Option(14, "--days", "-d", min=0, help="Fail if the certificate expires within this many days."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to connect to when HOST does not name one."),
    ip: Optional[str] = typer.Option(None, "--ip", help="Connect to this IP address, still sending HOST as SNI."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Timeout in seconds."),
) -> None:
    """Exit non-zero unless HOST has a certificate valid for at least DAYS more days."""
    downloader = _build_downloader(port, ip, timeout, verify=False)
    try:
        certificate = downloader.for_host(host)
        now = datetime.now(timezone.utc)
        valid = certificate.is_valid_until(now + timedelta(days=days), url=host, now=now)
    except CertScopeError as exc:
        _fail(exc)

    remaining = certificate.days_until_expiration(now)
    if certificate.uses_weak_hash():
        console.print(f"[yellow]⚠[/yellow] {host} uses a weak signature algorithm ({certificate.signature_algorithm()})")

    if valid:
        console.print(f"[green]✓[/green] {host}: valid, expires in {remaining} day(s)")
        return

    if not certificate.applies_to_url(host):
        console.print(f"[red]✗[/red] {host}: certificate does not cover this host ({', '.join(certificate.domains())})")
    else:
        console.print(f"[red]✗[/red] {host}: expires in {remaining} day(s), threshold is {days}")
    raise typer.Exit(code=1)


def batch_certificates(
    file: Path = typer.Argument(..., help="File with one host or URL per line (# for comments)."),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1, max=64, help="Parallel downloads."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Timeout in seconds per host."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON."),
) -> None:
    """Download certificates for every host listed in FILE."""
    from certscope.batch import download_many, load_targets
    from certscope.fetcher import Downloader

    try:
        targets = load_targets(file)
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        raise typer.Exit(code=1) from None

    if not targets:
        console.print("[yellow]No hosts to process.[/yellow]")
        raise typer.Exit(code=0)

    outcomes = download_many(targets, downloader=Downloader(timeout=timeout), max_workers=workers)
    now = datetime.now(timezone.utc)

    if json_output:
        payload = [
            {
                "target": outcome.target,
                "error": outcome.error or None,
                "error_kind": outcome.error_kind or None,
                "certificate": outcome.result.leaf.to_dict(now) if outcome.result else None,
            }
            for outcome in outcomes
        ]
        console.print_json(json.dumps(payload, default=str))
    else:
        table = Table(title=f"Certificates ({len(outcomes)} hosts)")
        table.add_column("Host")
        table.add_column("Issuer")
        table.add_column("Expires")
        table.add_column("Days", justify="right")
        table.add_column("Status")
        for outcome in outcomes:
            if not outcome.success:
                table.add_row(outcome.target, "", "", "", f"[red]{outcome.error_kind}[/red]")
                continue
            leaf = outcome.result.leaf
            status = "[green]valid[/green]" if leaf.is_valid(outcome.target, now=now) else "[red]invalid[/red]"
            table.add_row(
                outcome.target,
                leaf.issuer(),
                leaf.expiration_date().date().isoformat(),
                str(leaf.days_until_expiration(now)),
                status,
            )
        console.print(table)

    if any(not outcome.success for outcome in outcomes):
        raise typer.Exit(code=1)
