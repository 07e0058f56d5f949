"""Excepciones del dominio.

Por qué una jerarquía propia:
- Los llamadores (rutas HTTP, CLI, jobs) distinguen fallos transitorios de
  rechazos definitivos sin conocer httpx ni cryptography.
- `details` lleva contexto serializable (status, paso, ids) para logs/respuestas.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.domain.models import IssuedReceipt


class PaybridgeError(Exception):
    """Base de todos los errores de paybridge."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(PaybridgeError):
    """Configuración de proceso inválida (p.ej. clave del vault)."""


class FormatError(PaybridgeError):
    """El secreto almacenado no tiene la forma `hex(iv):hex(ciphertext)`."""


class DecryptionError(PaybridgeError):
    """La clave no corresponde (padding/texto inválido tras descifrar)."""


class AuthError(PaybridgeError):
    """Credenciales rechazadas por el servicio remoto."""


class ProtocolError(PaybridgeError):
    """Status o forma de respuesta inesperados."""


class ShiftError(PaybridgeError):
    """No se pudo consultar/abrir/cerrar el turno fiscal."""


class ReceiptError(PaybridgeError):
    """El servicio fiscal rechazó el recibo."""


class ServiceUnavailable(PaybridgeError):
    """Reintentos agotados ante fallos transitorios."""


class CircuitOpenError(ServiceUnavailable):
    """El circuit breaker rechazó la llamada sin tocar la red."""


class ReconciliationRequired(ReceiptError):
    """El recibo existe en remoto pero la persistencia local falló.

    No se reintenta la emisión: duplicaría el recibo fiscal.
    """

    def __init__(
        self,
        message: str,
        receipt: IssuedReceipt,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.receipt = receipt
        super().__init__(message, {"receipt_id": receipt.id, **(details or {})})
