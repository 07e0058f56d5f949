"""Contratos de los clientes externos (banco y servicio fiscal).

Por qué Protocol:
- El pipeline de pagos depende de estas formas, no de PrivatBank/Checkbox.
- Los tests sustituyen los clientes por fakes sin herencia.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from core.domain.models import CanonicalPayment, IssuedReceipt, ReceiptRequest


@runtime_checkable
class BankStatementSource(Protocol):
    """Fuente de créditos entrantes de una cuenta bancaria."""

    async def fetch_payments(
        self,
        *,
        merchant_id: str,
        token: str,
        start_date: date,
        end_date: date,
    ) -> list[CanonicalPayment]:
        ...


@runtime_checkable
class FiscalReceiptIssuer(Protocol):
    """Emisor de recibos fiscales.

    Reglas de diseño:
    - Una llamada = un recibo. Reintentar la llamada completa puede duplicarlo;
      los reintentos viven dentro del emisor, por request.
    """

    async def issue_receipt(
        self,
        login: str,
        password: str,
        license_key: str,
        request: ReceiptRequest,
    ) -> IssuedReceipt:
        ...
