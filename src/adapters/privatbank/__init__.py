"""Integración con la API de extractos de PrivatBank (AutoClient)."""

from adapters.privatbank.client import PrivatBankClient
from adapters.privatbank.models import BankStatementPage, BankTransaction
from adapters.privatbank.parsing import (
    format_bank_date,
    is_incoming_credit,
    parse_bank_datetime,
    to_canonical_payment,
)

__all__ = [
    "BankStatementPage",
    "BankTransaction",
    "PrivatBankClient",
    "format_bank_date",
    "is_incoming_credit",
    "parse_bank_datetime",
    "to_canonical_payment",
]
