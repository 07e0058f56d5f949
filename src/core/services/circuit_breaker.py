"""Circuit breaker (closed → open → half_open).

Reglas:
- El estado se comparte entre todas las llamadas de una instancia y vive lo
  que vive el proceso; los tests crean instancias aisladas.
- Las transiciones ocurren en secciones síncronas bajo un lock; la operación
  envuelta se espera fuera del lock.
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Awaitable, Callable, TypeVar

from core.domain.errors import CircuitOpenError
from core.domain.models import CircuitBreakerSnapshot, CircuitState
from core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitBreaker:
    def __init__(
        self,
        threshold: int = 5,
        timeout_ms: float = 60000,
        *,
        name: str = "default",
        now_fn: Callable[[], float] = time.monotonic,
        excluded: tuple[type[BaseException], ...] = (),
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self.timeout_ms = timeout_ms
        self.name = name
        self._now = now_fn
        self._excluded = excluded
        self._lock = Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def snapshot(self) -> CircuitBreakerSnapshot:
        with self._lock:
            return CircuitBreakerSnapshot(
                state=self._state,
                failure_count=self._failure_count,
                last_failure_at=self._last_failure_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_at = None
            self._trial_in_flight = False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        is_trial = self._before_call()
        try:
            result = await operation()
        except self._excluded:
            self._release_trial(is_trial)
            raise
        except Exception:
            self._on_failure(is_trial)
            raise
        self._on_success(is_trial)
        return result

    def _before_call(self) -> bool:
        with self._lock:
            if self._state is CircuitState.OPEN:
                elapsed_ms = (self._now() - (self._last_failure_at or 0.0)) * 1000.0
                if elapsed_ms <= self.timeout_ms:
                    logger.error("circuit_rejected", breaker=self.name, failure_count=self._failure_count)
                    raise CircuitOpenError(
                        "Circuit breaker is open",
                        {"breaker": self.name, "failure_count": self._failure_count},
                    )
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", breaker=self.name)

            if self._state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(
                        "Circuit breaker is testing recovery",
                        {"breaker": self.name, "state": self._state.value},
                    )
                self._trial_in_flight = True
                return True
            return False

    def _release_trial(self, is_trial: bool) -> None:
        if is_trial:
            with self._lock:
                self._trial_in_flight = False

    def _on_success(self, is_trial: bool) -> None:
        with self._lock:
            if is_trial:
                self._trial_in_flight = False
                logger.info("circuit_closed", breaker=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_at = None

    def _on_failure(self, is_trial: bool) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._now()
            if is_trial:
                self._trial_in_flight = False
                self._state = CircuitState.OPEN
                logger.error("circuit_reopened", breaker=self.name, failure_count=self._failure_count)
            elif self._state is CircuitState.CLOSED and self._failure_count >= self.threshold:
                self._state = CircuitState.OPEN
                logger.error(
                    "circuit_opened",
                    breaker=self.name,
                    failure_count=self._failure_count,
                    threshold=self.threshold,
                )
