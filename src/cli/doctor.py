"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import ConfigurationError
from core.services.credential_vault import CredentialVault, generate_key

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(settings: AppSettings, url: str) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


def _check_vault(settings: AppSettings) -> tuple[str, str]:
    """Round-trip a sample value through the vault."""

    try:
        vault = CredentialVault.from_settings(settings)
        ok = vault.decrypt(vault.encrypt("doctor-check")) == "doctor-check"
    except ConfigurationError as exc:
        return "FAIL", exc.message
    return ("OK", "AES-256-CBC round trip") if ok else ("FAIL", "round trip mismatch")


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="Paybridge Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    vault_status, vault_detail = _check_vault(settings)
    table.add_row("Encryption key", vault_status, vault_detail)
    table.add_row("Bank timezone", "OK", settings.bank_timezone)
    table.add_row(
        "Retry policy",
        "OK",
        f"{settings.retry_max_attempts} attempts, {settings.retry_base_delay_ms}ms base",
    )
    table.add_row(
        "Circuit breaker",
        "OK",
        f"threshold {settings.breaker_threshold}, timeout {settings.breaker_timeout_ms}ms",
    )

    # Connectivity (best-effort)
    for label, url in (
        ("Bank API", settings.privatbank_base_url),
        ("Fiscal API", settings.checkbox_api_base),
        ("Receipt API", settings.checkbox_receipt_api_base),
    ):
        ok_http, detail_http = asyncio.run(_check_http(settings, url))
        table.add_row(label, "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)

    if vault_status != "OK":
        _console.print(
            "\n[yellow]Note:[/yellow] run `paybridge doctor setup-vault` to generate and store an encryption key."
        )


@app.command(name="setup-vault")
def setup_vault(
    force: bool = typer.Option(False, "--force", help="Replace an existing key."),
) -> None:
    """Generate an encryption key and store it in the user config .env.

    Replacing a key makes every stored secret unreadable: rotate them with
    `paybridge vault rotate` using the old key.
    """

    settings = AppSettings()
    if settings.encryption_key is not None and not force:
        _console.print(
            "[yellow]An encryption key is already configured.[/yellow] Use --force to replace it."
        )
        raise typer.Exit(code=1)

    key = generate_key()
    env_path = write_user_env_vars({"PAYBRIDGE_ENCRYPTION_KEY": key})
    _console.print(f"[green]Saved encryption key to:[/green] {env_path}")
