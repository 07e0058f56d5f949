"""Canonicalización de transacciones bancarias.

Fallback con pérdida (documentado): una fecha malformada no aborta la
consulta; se sustituye por el instante actual y se emite un warning.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation

from adapters.privatbank.models import BankTransaction
from core.domain.models import CanonicalPayment
from core.logging import get_logger

logger = get_logger(__name__)

_DATETIME_RE = re.compile(
    r"^\s*(\d{1,2})\.(\d{1,2})\.(\d{4})"
    r"(?:\s+(\d{1,2}):(\d{2})(?::(\d{2}))?)?\s*$"
)


def format_bank_date(value: date) -> str:
    """Formato de fecha de la API: DD-MM-YYYY."""

    return value.strftime("%d-%m-%Y")


def parse_bank_datetime(text: str | None, tz: tzinfo) -> datetime:
    """`DD.MM.YYYY[ HH:MM[:SS]]` en hora local del banco → instante con zona."""

    match = _DATETIME_RE.match(text or "")
    if match:
        day, month, year, hours, minutes, seconds = match.groups()
        try:
            return datetime(
                int(year),
                int(month),
                int(day),
                int(hours or 0),
                int(minutes or 0),
                int(seconds or 0),
                tzinfo=tz,
            )
        except ValueError:
            pass

    logger.warning("bank_date_parse_fallback", raw=text)
    return datetime.now(timezone.utc)


def parse_bank_amount(text: str | None) -> Decimal | None:
    if not text:
        return None
    try:
        value = Decimal(text.strip().replace(",", ".").replace(" ", ""))
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def is_incoming_credit(tx: BankTransaction) -> bool:
    amount = parse_bank_amount(tx.amount_credit)
    return tx.direction == "C" and amount is not None and amount > 0


def to_canonical_payment(tx: BankTransaction, tz: tzinfo) -> CanonicalPayment:
    amount = parse_bank_amount(tx.amount_credit) or parse_bank_amount(tx.amount)
    raw_date = tx.datetime_processed or f"{tx.date_processed or ''} {tx.time_processed or ''}".strip()
    return CanonicalPayment(
        external_id=tx.technical_transaction_id or f"PB_{tx.id}",
        amount=amount,
        sender_name=tx.counterparty_name or "Unknown",
        sender_account=tx.counterparty_account or "",
        sender_tax_id=tx.counterparty_tax_id or "",
        description=tx.purpose or "",
        payment_date=parse_bank_datetime(raw_date, tz),
        currency=tx.currency or "UAH",
        document_number=tx.document_number or "",
    )
