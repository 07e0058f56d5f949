from __future__ import annotations

import asyncio

import httpx
import pytest
from structlog.testing import capture_logs

from core.services.retry import RetryPolicy, default_is_retryable, with_retry


def _status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://example.test/x")
    response = httpx.Response(status, request=request, headers=headers)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class _Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def test_exponential_delays_then_success() -> None:
    # Three transient failures then success: waits 100, 200, 400 ms.
    attempts = 0

    async def op() -> str:
        nonlocal attempts
        attempts += 1
        if attempts <= 3:
            raise _status_error(503)
        return "ok"

    sleeps = _Sleeps()
    policy = RetryPolicy(max_attempts=4, base_delay_ms=100, max_delay_ms=10_000)
    with capture_logs() as logs:
        result = asyncio.run(with_retry(op, policy, sleep=sleeps))

    assert result == "ok"
    assert attempts == 4
    assert sleeps.calls == [0.1, 0.2, 0.4]
    assert [entry["attempt"] for entry in logs if entry["event"] == "retry_scheduled"] == [1, 2, 3]


def test_delay_is_capped() -> None:
    policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=3000)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1000, 2000, 3000, 3000]


def test_exhausted_attempts_reraise_last_error() -> None:
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("refused")

    sleeps = _Sleeps()
    with pytest.raises(httpx.ConnectError):
        asyncio.run(with_retry(op, RetryPolicy(max_attempts=3, base_delay_ms=10), sleep=sleeps))
    assert calls == 3
    assert len(sleeps.calls) == 2


def test_non_retryable_error_fails_immediately() -> None:
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise _status_error(404)

    sleeps = _Sleeps()
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(with_retry(op, RetryPolicy(max_attempts=5), sleep=sleeps))
    assert calls == 1
    assert sleeps.calls == []


def test_retry_after_header_extends_wait() -> None:
    attempts = 0

    async def op() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise _status_error(429, {"Retry-After": "2"})
        return "ok"

    sleeps = _Sleeps()
    policy = RetryPolicy(max_attempts=2, base_delay_ms=100, max_delay_ms=10_000)
    assert asyncio.run(with_retry(op, policy, sleep=sleeps)) == "ok"
    assert sleeps.calls == [2.0]


def test_default_classification() -> None:
    assert default_is_retryable(_status_error(500))
    assert default_is_retryable(_status_error(429))
    assert default_is_retryable(httpx.ReadTimeout("slow"))
    assert not default_is_retryable(_status_error(400))
    assert not default_is_retryable(ValueError("boom"))


def test_policy_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_permanent_failure_uses_every_attempt() -> None:
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise _status_error(500)

    sleeps = _Sleeps()
    policy = RetryPolicy(max_attempts=4, base_delay_ms=100, backoff_multiplier=2)
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(with_retry(op, policy, sleep=sleeps))
    assert calls == 4
    assert sleeps.calls == [0.1, 0.2, 0.4]
