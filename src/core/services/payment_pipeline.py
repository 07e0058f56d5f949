"""Payment-to-receipt orchestration.

Glue between the bank statement source and the fiscal receipt issuer. HTTP
routes, CLI commands and scheduled jobs all go through these helpers, so the
rules below live in one place:

- credentials may be stored encrypted; they are revealed right before use;
- payments already known to the caller are dropped (refetches are common);
- a receipt that was issued is never issued again, even when the caller's
  persistence step fails afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Awaitable, Callable, Iterable

from core.domain.errors import ReconciliationRequired
from core.domain.models import (
    CanonicalPayment,
    IssuedReceipt,
    PaymentType,
    ReceiptGood,
    ReceiptPayment,
    ReceiptRequest,
)
from core.domain.money import to_minor_units
from core.interfaces.clients import BankStatementSource, FiscalReceiptIssuer
from core.logging import get_logger
from core.services.credential_vault import CredentialVault

logger = get_logger(__name__)

RECEIPT_FOOTER = "Дякуємо за співпрацю!"
DEFAULT_PRODUCT_CODE = "SERVICE"

PersistHook = Callable[[CanonicalPayment, IssuedReceipt], Awaitable[None]]


@dataclass(frozen=True)
class BankCredentials:
    """Bank API credentials (values may be vault-encrypted)."""

    merchant_id: str
    token: str

    def revealed(self, vault: CredentialVault | None) -> "BankCredentials":
        if vault is None:
            return self
        return replace(self, token=vault.reveal(self.token))

    def __repr__(self) -> str:
        return f"BankCredentials(merchant_id={self.merchant_id!r}, token=<redacted>)"


@dataclass(frozen=True)
class FiscalCredentials:
    """Fiscal cashier credentials (values may be vault-encrypted)."""

    login: str
    password: str
    license_key: str

    def revealed(self, vault: CredentialVault | None) -> "FiscalCredentials":
        if vault is None:
            return self
        return replace(
            self,
            password=vault.reveal(self.password),
            license_key=vault.reveal(self.license_key),
        )

    def __repr__(self) -> str:
        return f"FiscalCredentials(login={self.login!r}, password=<redacted>, license_key=<redacted>)"


def dedupe_payments(
    payments: Iterable[CanonicalPayment],
    known_ids: Iterable[str] = (),
) -> list[CanonicalPayment]:
    """Remove already-known and repeated payments keeping the first occurrence."""

    seen = set(known_ids)
    out: list[CanonicalPayment] = []
    for payment in payments:
        if payment.external_id in seen:
            continue
        seen.add(payment.external_id)
        out.append(payment)
    return out


async def collect_payments(
    bank: BankStatementSource,
    credentials: BankCredentials,
    start: date,
    end: date,
    *,
    known_ids: Iterable[str] = (),
    vault: CredentialVault | None = None,
) -> list[CanonicalPayment]:
    creds = credentials.revealed(vault)
    payments = await bank.fetch_payments(
        merchant_id=creds.merchant_id,
        token=creds.token,
        start_date=start,
        end_date=end,
    )
    fresh = dedupe_payments(payments, known_ids)
    logger.info(
        "payments_collected",
        merchant_id=creds.merchant_id,
        fetched=len(payments),
        new=len(fresh),
    )
    return fresh


def build_receipt_request(
    payment: CanonicalPayment,
    *,
    company_name: str,
    product_code: str | None = None,
    product_name: str | None = None,
) -> ReceiptRequest:
    """Single-good cashless receipt for one incoming payment."""

    value = to_minor_units(payment.amount)
    return ReceiptRequest(
        goods=[
            ReceiptGood(
                code=product_code or DEFAULT_PRODUCT_CODE,
                name=product_name or payment.description or company_name,
                price=value,
                quantity=1000,
            )
        ],
        payments=[ReceiptPayment(type=PaymentType.CASHLESS, value=value)],
        header=f"Платіж від: {payment.sender_name}",
        footer=RECEIPT_FOOTER,
    )


async def issue_receipt_for_payment(
    fiscal: FiscalReceiptIssuer,
    credentials: FiscalCredentials,
    payment: CanonicalPayment,
    *,
    company_name: str,
    persist: PersistHook | None = None,
    vault: CredentialVault | None = None,
    product_code: str | None = None,
    product_name: str | None = None,
) -> IssuedReceipt:
    creds = credentials.revealed(vault)
    request = build_receipt_request(
        payment,
        company_name=company_name,
        product_code=product_code,
        product_name=product_name,
    )
    receipt = await fiscal.issue_receipt(creds.login, creds.password, creds.license_key, request)

    if persist is not None:
        try:
            await persist(payment, receipt)
        except Exception as exc:
            logger.error(
                "receipt_reconciliation_required",
                payment_id=payment.external_id,
                receipt_id=receipt.id,
                error=type(exc).__name__,
            )
            raise ReconciliationRequired(
                "Receipt was issued but could not be recorded",
                receipt,
                {"payment_id": payment.external_id},
            ) from exc

    return receipt
