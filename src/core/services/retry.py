"""Ejecutor de reintentos con backoff exponencial.

Por qué aquí (y no en cada adaptador):
- Banco y servicio fiscal comparten la misma política de transitoriedad
  (red, 5xx, 429); centralizarla evita divergencias sutiles.
- La espera es `asyncio.sleep`: suspende solo la tarea actual.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

from core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


def default_is_retryable(exc: BaseException) -> bool:
    """Red (conexión, timeouts), HTTP 5xx y 429 se reintentan; el resto no."""

    if isinstance(exc, httpx.HTTPStatusError):
        return is_retryable_status(exc.response.status_code)
    return isinstance(exc, httpx.TransportError)


def _retry_after_ms(exc: BaseException) -> float | None:
    if not isinstance(exc, httpx.HTTPStatusError) or exc.response.status_code != 429:
        return None
    value = exc.response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value) * 1000.0)
    except ValueError:
        return None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 10000
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(default=default_is_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Espera (ms) antes del reintento que sigue al intento `attempt` (1-based)."""

        delay = self.base_delay_ms * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_ms)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[int, BaseException], None] | None = None,
    operation_name: str | None = None,
) -> T:
    """Ejecuta `operation` reintentando errores transitorios.

    Relanza el último error cuando se agota `max_attempts` o cuando el error
    no es reintentable. Un 429 con `Retry-After` numérico espera al menos ese
    tiempo, sin superar `max_delay_ms`.
    """

    policy = policy or RetryPolicy()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not policy.is_retryable(exc):
                raise

            delay_ms = policy.delay_for(attempt)
            hinted = _retry_after_ms(exc)
            if hinted is not None:
                delay_ms = min(max(delay_ms, hinted), policy.max_delay_ms)

            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_ms=delay_ms,
                error=type(exc).__name__,
            )
            if on_retry is not None:
                on_retry(attempt, exc)

            await sleep(delay_ms / 1000.0)
            attempt += 1
