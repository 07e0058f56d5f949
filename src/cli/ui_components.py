"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from typing import Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import CanonicalPayment, IssuedReceipt, ReceiptStatus, Shift


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Evita dependencias circulares (main <-> doctor).
    - Permite desactivar banner en modos no interactivos (JSON/pipelines).
    """

    title = Text("PAYBRIDGE", style="bold cyan")
    subtitle = Text("Extractos bancarios • Recibos fiscales • Vault", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_payments_table(payments: Sequence[CanonicalPayment]) -> Table:
    table = Table(title=f"Incoming payments ({len(payments)})")
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("Sender", style="white")
    table.add_column("Amount", style="green", justify="right")
    table.add_column("Currency", style="dim")
    table.add_column("Purpose", style="magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    for p in payments:
        table.add_row(
            p.payment_date.strftime("%Y-%m-%d %H:%M"),
            p.sender_name,
            f"{p.amount:.2f}",
            p.currency,
            p.description,
            p.external_id,
        )
    return table


def build_receipt_panel(receipt: IssuedReceipt) -> Panel:
    """Panel para presentar un recibo emitido."""

    color = "green" if receipt.status is ReceiptStatus.DONE else "yellow"
    body = Text()
    body.append(f"ID: {receipt.id}\n")
    body.append("Status: ")
    body.append(receipt.status.value + "\n", style=f"bold {color}")
    if receipt.fiscal_code:
        body.append(f"Fiscal code: {receipt.fiscal_code}\n")
    if receipt.receipt_url:
        body.append(f"URL: {receipt.receipt_url}\n")
    if receipt.pdf_url:
        body.append(f"PDF: {receipt.pdf_url}\n")
    body.append(f"Created: {receipt.created_at.isoformat()}", style="dim")
    return Panel(body, title=Text("Fiscal receipt", style=f"bold {color}"), border_style=color)


def build_shift_panel(shift: Shift | None) -> Panel:
    if shift is None:
        return Panel(Text("No open shift to close.", style="dim"), border_style="yellow")
    body = Text()
    body.append(f"ID: {shift.id}\nStatus: {shift.status.value}\n")
    if shift.closed_at:
        body.append(f"Closed: {shift.closed_at.isoformat()}", style="dim")
    return Panel(body, title=Text("Shift", style="bold cyan"), border_style="cyan")
