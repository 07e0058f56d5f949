from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable
from zoneinfo import ZoneInfo

import httpx
import pytest
from structlog.testing import capture_logs

from adapters.privatbank import PrivatBankClient
from core.config import AppSettings
from core.domain.errors import AuthError, ProtocolError, ServiceUnavailable
from core.services.rate_limiter import FixedWindowRateLimiter

START = date(2024, 1, 1)
END = date(2024, 1, 31)


def _settings(**overrides: Any) -> AppSettings:
    values: dict[str, Any] = {
        "privatbank_base_url": "https://bank.test/api",
        "retry_max_attempts": 3,
        "retry_base_delay_ms": 10,
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


def _tx(tx_id: str, *, kind: str = "C", credit: str = "100.00", name: str = "ТОВ Ромашка") -> dict[str, Any]:
    return {
        "ID": tx_id,
        "TECHNICAL_TRANSACTION_ID": f"tech-{tx_id}",
        "TRANTYPE": kind,
        "SUM": credit,
        "SUM_E": credit if kind == "C" else "0.00",
        "CCY": "UAH",
        "AUT_CNTR_NAM": name,
        "AUT_CNTR_ACC": "UA213223130000026007233566001",
        "AUT_CNTR_CRF": "12345678",
        "OSND": "Оплата за послуги",
        "NUM_DOC": "42",
        "DATE_TIME_DAT_OD_TIM_P": "15.01.2024 10:30:00",
    }


def _page(transactions: list[dict[str, Any]], next_id: str | None = None, status: str = "SUCCESS") -> httpx.Response:
    body = {
        "status": status,
        "type": "transactions",
        "exist_next_page": next_id is not None,
        "next_page_id": next_id or "",
        "transactions": transactions,
    }
    return httpx.Response(200, content=json.dumps(body, ensure_ascii=False).encode("cp1251"))


@dataclass
class _Clock:
    now: float = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


class _Sleeps:
    def __init__(self, clock: _Clock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.now += seconds


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    settings: AppSettings | None = None,
    sleep: _Sleeps | None = None,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> PrivatBankClient:
    return PrivatBankClient(
        settings or _settings(),
        transport=httpx.MockTransport(handler),
        sleep=sleep or _Sleeps(),
        rate_limiter=rate_limiter,
    )


def _fetch(client: PrivatBankClient) -> list:
    return asyncio.run(
        client.fetch_payments(merchant_id="m-1", token="tok", start_date=START, end_date=END)
    )


def test_pages_are_fetched_in_cursor_order() -> None:
    pages = {
        None: _page([_tx("1")], next_id="p2"),
        "p2": _page([_tx("2")], next_id="p3"),
        "p3": _page([_tx("3")]),
    }
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/statements/transactions"
        assert request.headers["Id"] == "m-1"
        assert request.headers["Token"] == "tok"
        assert request.headers["startDate"] == "01-01-2024"
        assert request.headers["endDate"] == "31-01-2024"
        assert request.url.params["startDate"] == "01-01-2024"
        cursor = request.url.params.get("followId")
        seen.append(cursor)
        return pages[cursor]

    payments = _fetch(_client(handler))

    assert seen == [None, "p2", "p3"]
    assert [p.external_id for p in payments] == ["tech-1", "tech-2", "tech-3"]


def test_cp1251_body_is_decoded_and_canonicalized() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _page([_tx("1", credit="1234,56")])

    [payment] = _fetch(_client(handler))

    assert payment.sender_name == "ТОВ Ромашка"
    assert payment.description == "Оплата за послуги"
    assert payment.amount == Decimal("1234.56")
    assert payment.currency == "UAH"
    assert payment.payment_date == datetime(2024, 1, 15, 10, 30, tzinfo=ZoneInfo("Europe/Kyiv"))


def test_only_incoming_credits_are_returned() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _page([_tx("1"), _tx("2", kind="D"), _tx("3", credit="0.00")])

    payments = _fetch(_client(handler))
    assert [p.external_id for p in payments] == ["tech-1"]


def test_missing_technical_id_falls_back_to_prefixed_id() -> None:
    tx = _tx("77")
    del tx["TECHNICAL_TRANSACTION_ID"]
    del tx["AUT_CNTR_NAM"]

    [payment] = _fetch(_client(lambda request: _page([tx])))
    assert payment.external_id == "PB_77"
    assert payment.sender_name == "Unknown"


def test_pagination_stops_at_ceiling() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return _page([_tx(str(calls))], next_id=f"p{calls + 1}")

    with capture_logs() as logs:
        payments = _fetch(_client(handler, settings=_settings(privatbank_max_pages=2)))

    assert calls == 2
    assert len(payments) == 2
    assert any(entry["event"] == "bank_pagination_ceiling_reached" for entry in logs)


def test_missing_cursor_stops_with_warning_and_keeps_pages() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        body = {
            "status": "SUCCESS",
            "type": "transactions",
            "exist_next_page": True,
            "next_page_id": "",
            "transactions": [_tx("1")],
        }
        return httpx.Response(200, content=json.dumps(body, ensure_ascii=False).encode("cp1251"))

    with capture_logs() as logs:
        payments = _fetch(_client(handler))

    assert calls == 1
    assert [p.external_id for p in payments] == ["tech-1"]
    [warning] = [entry for entry in logs if entry["event"] == "bank_pagination_cursor_missing"]
    assert warning["log_level"] == "warning"
    assert warning["page"] == 1


def test_unauthorized_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(401, content="Невірний токен".encode("cp1251"))

    with pytest.raises(AuthError):
        _fetch(_client(handler))
    assert calls == 1


def test_server_errors_are_retried_then_surface_as_unavailable() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    sleeps = _Sleeps()
    with pytest.raises(ServiceUnavailable):
        _fetch(_client(handler, sleep=sleeps))
    assert calls == 3
    assert sleeps.calls == [0.01, 0.02]


def test_transient_error_recovers_mid_pagination() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise httpx.ConnectError("reset by peer")
        if request.url.params.get("followId") == "p2":
            return _page([_tx("2")])
        return _page([_tx("1")], next_id="p2")

    payments = _fetch(_client(handler))
    assert [p.external_id for p in payments] == ["tech-1", "tech-2"]
    assert calls == 3


def test_error_status_in_body_is_protocol_error() -> None:
    with pytest.raises(ProtocolError):
        _fetch(_client(lambda request: _page([], status="ERROR")))


def test_invalid_json_is_protocol_error() -> None:
    with pytest.raises(ProtocolError):
        _fetch(_client(lambda request: httpx.Response(200, content=b"<html>maintenance</html>")))


def test_rate_limited_fetch_waits_for_window_reset() -> None:
    clock = _Clock()
    limiter = FixedWindowRateLimiter(now_fn=clock)
    sleeps = _Sleeps(clock)
    settings = _settings(external_rate_limit_window_ms=1000, external_rate_limit_max_requests=2)

    def handler(request: httpx.Request) -> httpx.Response:
        cursor = request.url.params.get("followId")
        if cursor is None:
            return _page([_tx("1")], next_id="p2")
        if cursor == "p2":
            return _page([_tx("2")], next_id="p3")
        return _page([_tx("3")])

    payments = _fetch(_client(handler, settings=settings, sleep=sleeps, rate_limiter=limiter))

    assert len(payments) == 3
    assert sleeps.calls == [pytest.approx(1.001)]
