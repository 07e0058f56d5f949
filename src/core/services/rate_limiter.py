"""Rate limiter de ventana fija por identificador.

Idea:
- O(1) memoria por identificador y cero coordinación entre procesos; a cambio
  se permiten ráfagas en el borde de la ventana.
- Nunca bloquea: devuelve `allowed=False` y el llamador decide (429, esperar...).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from core.domain.models import RateLimitDecision
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    window_ms: int
    max_requests: int
    message: str = "Too many requests, please try again later"


RATE_LIMIT_PROFILES: dict[str, RateLimitPolicy] = {
    # Endpoints de autenticación: estricto.
    "auth": RateLimitPolicy(
        window_ms=15 * 60 * 1000,
        max_requests=5,
        message="Too many authentication attempts, please try again later",
    ),
    "api": RateLimitPolicy(window_ms=60 * 1000, max_requests=60, message="Too many requests"),
    # Llamadas que terminan en banco/servicio fiscal.
    "external": RateLimitPolicy(
        window_ms=60 * 1000,
        max_requests=10,
        message="Too many requests to external service, please slow down",
    ),
    "read": RateLimitPolicy(window_ms=60 * 1000, max_requests=120, message="Too many requests"),
}


@dataclass
class _Entry:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    def __init__(self, *, now_fn: Callable[[], float] = time.time) -> None:
        self._now = now_fn
        self._lock = Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def check(self, identifier: str, window_ms: int, max_requests: int) -> RateLimitDecision:
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if max_requests < 0:
            raise ValueError("max_requests must be >= 0")

        with self._lock:
            now = self._now()
            entry = self._entries.get(identifier)
            if entry is None or now > entry.reset_at:
                entry = _Entry(count=0, reset_at=now + window_ms / 1000.0)
                self._entries[identifier] = entry
            entry.count += 1
            count = entry.count
            reset_at = entry.reset_at

        allowed = count <= max_requests
        if not allowed:
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                count=count,
                limit=max_requests,
            )
        return RateLimitDecision(
            allowed=allowed,
            limit=max_requests,
            remaining=max(0, max_requests - count),
            reset_at=reset_at,
        )

    def check_policy(self, identifier: str, policy: RateLimitPolicy | str) -> RateLimitDecision:
        if isinstance(policy, str):
            policy = RATE_LIMIT_PROFILES[policy]
        return self.check(identifier, policy.window_ms, policy.max_requests)

    def now(self) -> float:
        return self._now()

    def sweep(self) -> int:
        """Elimina entradas cuya ventana ya expiró. Devuelve cuántas."""

        with self._lock:
            now = self._now()
            expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("rate_limit_sweep", removed=len(expired))
        return len(expired)

    async def run_sweeper(self, interval_seconds: float = 300.0) -> None:
        """Barre periódicamente hasta que se cancele la tarea."""

        while True:
            await asyncio.sleep(interval_seconds)
            self.sweep()

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
