"""CLI principal (Typer + Rich).

Por qué Typer:
- Subcomandos tipados (payments, receipt, vault, doctor) sin boilerplate.
- Rich se encarga del render; la lógica vive en `core` y `adapters`.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from adapters.checkbox import CheckboxClient
from adapters.json_exporter import export_payments_json
from adapters.privatbank import PrivatBankClient
from cli import doctor
from cli.ui_components import (
    build_payments_table,
    build_receipt_panel,
    build_shift_panel,
    print_banner,
)
from core.config import AppSettings
from core.domain.errors import PaybridgeError
from core.domain.models import PaymentType, ReceiptGood, ReceiptPayment, ReceiptRequest
from core.domain.money import to_minor_units
from core.logging import setup_logging
from core.services.credential_vault import CredentialVault, generate_key, rotate_secret
from core.services.payment_pipeline import BankCredentials, FiscalCredentials, collect_payments
from core.services.rate_limiter import FixedWindowRateLimiter

app = typer.Typer(no_args_is_help=True, help="Bank statements, fiscal receipts and credential vault.")
payments_app = typer.Typer(no_args_is_help=True, help="Bank statement commands.")
receipt_app = typer.Typer(no_args_is_help=True, help="Fiscal receipt commands.")
vault_app = typer.Typer(no_args_is_help=True, help="Credential vault commands.")

app.add_typer(payments_app, name="payments")
app.add_typer(receipt_app, name="receipt")
app.add_typer(vault_app, name="vault")
app.add_typer(doctor.app, name="doctor")

_console = Console()

_DATE_FORMATS = ["%Y-%m-%d", "%d.%m.%Y"]


@app.callback()
def _main(
    banner: bool = typer.Option(True, "--banner/--no-banner", help="Show the welcome banner."),
) -> None:
    settings = AppSettings()
    setup_logging(settings.log_level, json_output=settings.log_json)
    if banner:
        print_banner(_console)


def _optional_vault(settings: AppSettings) -> CredentialVault | None:
    """Vault si hay clave configurada; sin clave, los valores se usan en claro."""

    if settings.encryption_key is None:
        return None
    return CredentialVault.from_settings(settings)


def _fail(exc: PaybridgeError) -> typer.Exit:
    _console.print(f"[red]{type(exc).__name__}:[/red] {exc.message}")
    for key, value in exc.details.items():
        _console.print(f"  [dim]{key}[/dim]: {value}")
    return typer.Exit(code=1)


@payments_app.command("fetch")
def payments_fetch(
    merchant_id: str = typer.Option(..., "--merchant-id", help="Bank API client id."),
    token: str = typer.Option(..., "--token", help="Bank API token (plain or vault-encrypted)."),
    start: datetime = typer.Option(..., "--start", formats=_DATE_FORMATS, help="First day of the range."),
    end: datetime = typer.Option(..., "--end", formats=_DATE_FORMATS, help="Last day of the range."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write payments as JSON."),
) -> None:
    """Fetch incoming credits for a date range."""

    settings = AppSettings()
    bank = PrivatBankClient(settings, rate_limiter=FixedWindowRateLimiter())
    try:
        payments = asyncio.run(
            collect_payments(
                bank,
                BankCredentials(merchant_id=merchant_id, token=token),
                start.date(),
                end.date(),
                vault=_optional_vault(settings),
            )
        )
    except PaybridgeError as exc:
        raise _fail(exc) from exc

    _console.print(build_payments_table(payments))
    if output is not None:
        path = export_payments_json(payments=payments, output_path=output)
        _console.print(f"[green]Saved:[/green] {path}")


def _single_good_request(amount: str, name: str, code: str) -> ReceiptRequest:
    """Recibo de un solo bien; errores de entrada como `BadParameter`."""

    try:
        value = to_minor_units(Decimal(amount))
    except (InvalidOperation, ValueError) as exc:
        raise typer.BadParameter(f"invalid amount: {amount}", param_hint="--amount") from exc
    if value <= 0:
        raise typer.BadParameter(f"amount must be positive: {amount}", param_hint="--amount")

    try:
        return ReceiptRequest(
            goods=[ReceiptGood(code=code, name=name, price=value)],
            payments=[ReceiptPayment(type=PaymentType.CASHLESS, value=value)],
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc.errors()[0]["msg"])) from exc


@receipt_app.command("issue")
def receipt_issue(
    login: str = typer.Option(..., "--login", help="Cashier login."),
    password: str = typer.Option(..., "--password", help="Cashier password (plain or vault-encrypted)."),
    license_key: str = typer.Option(..., "--license-key", help="Cash register license key (plain or vault-encrypted)."),
    amount: str = typer.Option(..., "--amount", help="Amount in UAH, e.g. 50.00"),
    name: str = typer.Option(..., "--name", help="Good/service name printed on the receipt."),
    code: str = typer.Option("SERVICE", "--code", help="Good/service code."),
) -> None:
    """Issue a single-good cashless receipt."""

    request = _single_good_request(amount, name, code)
    settings = AppSettings()
    try:
        creds = FiscalCredentials(login, password, license_key).revealed(_optional_vault(settings))
        receipt = asyncio.run(
            CheckboxClient(settings).issue_receipt(creds.login, creds.password, creds.license_key, request)
        )
    except PaybridgeError as exc:
        raise _fail(exc) from exc

    _console.print(build_receipt_panel(receipt))


@receipt_app.command("close-shift")
def receipt_close_shift(
    login: str = typer.Option(..., "--login", help="Cashier login."),
    password: str = typer.Option(..., "--password", help="Cashier password (plain or vault-encrypted)."),
    license_key: str = typer.Option(..., "--license-key", help="Cash register license key (plain or vault-encrypted)."),
) -> None:
    """Close the current fiscal shift (end of day)."""

    settings = AppSettings()
    try:
        creds = FiscalCredentials(login, password, license_key).revealed(_optional_vault(settings))
        shift = asyncio.run(
            CheckboxClient(settings).close_shift(creds.login, creds.password, creds.license_key)
        )
    except PaybridgeError as exc:
        raise _fail(exc) from exc

    _console.print(build_shift_panel(shift))


@vault_app.command("encrypt")
def vault_encrypt(value: str = typer.Argument(..., help="Plain text to encrypt.")) -> None:
    try:
        vault = CredentialVault.from_settings(AppSettings())
    except PaybridgeError as exc:
        raise _fail(exc) from exc
    typer.echo(vault.encrypt(value))


@vault_app.command("decrypt")
def vault_decrypt(value: str = typer.Argument(..., help="Encrypted value (hex(iv):hex(ciphertext)).")) -> None:
    try:
        typer.echo(CredentialVault.from_settings(AppSettings()).decrypt(value))
    except PaybridgeError as exc:
        raise _fail(exc) from exc


@vault_app.command("rotate")
def vault_rotate(
    values: List[str] = typer.Argument(..., help="Encrypted values to re-encrypt."),
    old_key: str = typer.Option(..., "--old-key", prompt=True, hide_input=True),
    new_key: str = typer.Option(..., "--new-key", prompt=True, hide_input=True),
) -> None:
    """Re-encrypt stored secrets after a key change (one output line per value)."""

    try:
        old = CredentialVault(old_key)
        new = CredentialVault(new_key)
        for value in values:
            typer.echo(rotate_secret(value, old=old, new=new))
    except PaybridgeError as exc:
        raise _fail(exc) from exc


@vault_app.command("generate-key")
def vault_generate_key() -> None:
    """Print a fresh 32-character key (not stored; see `doctor setup-vault`)."""

    typer.echo(generate_key())


def run() -> None:
    app()
