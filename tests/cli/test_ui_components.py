from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from rich.console import Console

from cli.ui_components import build_payments_table, build_receipt_panel, build_shift_panel
from core.domain.models import CanonicalPayment, IssuedReceipt


def _render(renderable) -> str:
    console = Console(record=True, width=160)
    console.print(renderable)
    return console.export_text()


def test_payments_table_lists_rows() -> None:
    payment = CanonicalPayment(
        external_id="tech-1",
        amount=Decimal("50.5"),
        sender_name="ТОВ Ромашка",
        payment_date=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
    )
    text = _render(build_payments_table([payment]))
    assert "ТОВ Ромашка" in text
    assert "50.50" in text
    assert "2024-01-15 10:30" in text


def test_receipt_panel_shows_fiscal_code() -> None:
    receipt = IssuedReceipt(
        id="r-1",
        status="DONE",
        fiscal_code="FC-9",
        created_at=datetime(2024, 1, 15, tzinfo=timezone.utc),
    )
    text = _render(build_receipt_panel(receipt))
    assert "FC-9" in text
    assert "DONE" in text


def test_shift_panel_without_shift() -> None:
    assert "No open shift" in _render(build_shift_panel(None))
