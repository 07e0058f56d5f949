"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Los formatos de cable del banco y del servicio fiscal cambian entre
  versiones; aquí vive la forma canónica que el resto del sistema consume.

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import AwareDatetime, BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.errors import FormatError


class CanonicalPayment(BaseModel):
    """Pago entrante normalizado a partir de una transacción bancaria.

    Por qué existe:
    - Desacopla la persistencia (colaborador externo) de los nombres de campo
      del banco, que varían entre revisiones de la API.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(
        ...,
        min_length=1,
        description="Identificador estable de la transacción en el banco.",
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Importe acreditado (unidades mayores).",
    )
    sender_name: str = Field(
        default="Unknown",
        description="Nombre de la contraparte que envía el pago.",
    )
    sender_account: str = Field(default="", description="Cuenta (IBAN) de la contraparte.")
    sender_tax_id: str = Field(default="", description="Código fiscal de la contraparte.")
    description: str = Field(default="", description="Propósito del pago.")
    payment_date: AwareDatetime = Field(
        ...,
        description="Instante del pago, siempre con zona horaria.",
    )
    currency: str = Field(default="UAH", min_length=1, description="Código de moneda (UAH, USD, EUR).")
    document_number: str = Field(default="", description="Número de documento bancario.")


class PaymentType(str, Enum):
    """Métodos de pago aceptados por el servicio fiscal."""

    CASH = "CASH"
    CASHLESS = "CASHLESS"
    CARD = "CARD"


class ReceiptGood(BaseModel):
    code: str = Field(..., min_length=1, max_length=256)
    name: str = Field(..., min_length=1, max_length=1024)
    price: int = Field(
        ...,
        ge=0,
        description="Precio unitario en unidades menores (kopiyky).",
    )
    quantity: int = Field(
        default=1000,
        gt=0,
        description="Cantidad en milésimas (1000 = 1 unidad).",
    )


class ReceiptPayment(BaseModel):
    type: PaymentType = Field(default=PaymentType.CASHLESS)
    value: int = Field(..., ge=0, description="Importe en unidades menores.")


class ReceiptRequest(BaseModel):
    """Recibo de venta construido por el llamador."""

    goods: list[ReceiptGood] = Field(..., min_length=1)
    payments: list[ReceiptPayment] = Field(..., min_length=1)
    cashier_name: str | None = None
    header: str | None = None
    footer: str | None = None
    id: str | None = Field(
        default=None,
        description="UUID del recibo; el cliente fiscal lo genera si falta.",
    )

    def to_payload(self) -> dict[str, Any]:
        """Cuerpo JSON tal como lo espera `POST /receipts/sell`."""

        payload: dict[str, Any] = {
            "goods": [
                {
                    "good": {"code": g.code, "name": g.name, "price": g.price},
                    "quantity": g.quantity,
                }
                for g in self.goods
            ],
            "payments": [{"type": p.type.value, "value": p.value} for p in self.payments],
        }
        for key in ("id", "cashier_name", "header", "footer"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


class ReceiptStatus(str, Enum):
    DONE = "DONE"
    PENDING = "PENDING"
    ERROR = "ERROR"


class IssuedReceipt(BaseModel):
    """Descriptor inmutable del recibo emitido."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    status: ReceiptStatus
    fiscal_code: str | None = None
    receipt_url: str | None = None
    pdf_url: str | None = None
    created_at: datetime


class ShiftStatus(str, Enum):
    CREATED = "CREATED"
    OPENING = "OPENING"
    OPENED = "OPENED"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


class Shift(BaseModel):
    """Turno fiscal remoto. Nunca se cachea entre llamadas."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    status: ShiftStatus
    opened_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status is ShiftStatus.OPENED


class EncryptedSecret(BaseModel):
    """Secreto cifrado serializado como `hex(iv):hex(ciphertext)`."""

    model_config = ConfigDict(frozen=True)

    iv: bytes = Field(..., min_length=16, max_length=16)
    ciphertext: bytes = Field(..., min_length=1)

    def serialize(self) -> str:
        return f"{self.iv.hex()}:{self.ciphertext.hex()}"

    @classmethod
    def parse(cls, text: str) -> "EncryptedSecret":
        if not isinstance(text, str) or ":" not in text:
            raise FormatError("Invalid encrypted text format")
        iv_hex, ct_hex = text.split(":", 1)
        if not iv_hex or not ct_hex:
            raise FormatError("Invalid encrypted text format")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
        except ValueError as exc:
            raise FormatError("Encrypted text is not hex encoded") from exc
        if len(iv) != 16:
            raise FormatError("Initialization vector must be 16 bytes", {"iv_length": len(iv)})
        return cls(iv=iv, ciphertext=ciphertext)


class RateLimitDecision(BaseModel):
    """Resultado de `check`; contrato que consume la capa HTTP."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    limit: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    reset_at: float = Field(..., description="Fin de la ventana (segundos epoch del reloj del limiter).")

    def retry_after_seconds(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))

    def headers(self, now: float) -> dict[str, str]:
        out = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
        }
        if not self.allowed:
            out["Retry-After"] = str(self.retry_after_seconds(now))
        return out


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: CircuitState
    failure_count: int = Field(..., ge=0)
    last_failure_at: float | None = None
