from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from structlog.testing import capture_logs

from adapters.privatbank.models import BankStatementPage, BankTransaction
from adapters.privatbank.parsing import (
    format_bank_date,
    is_incoming_credit,
    parse_bank_amount,
    parse_bank_datetime,
)

KYIV = ZoneInfo("Europe/Kyiv")


def test_format_bank_date() -> None:
    assert format_bank_date(date(2024, 3, 5)) == "05-03-2024"


def test_parse_datetime_with_and_without_time() -> None:
    assert parse_bank_datetime("05.03.2024 09:07:01", KYIV) == datetime(2024, 3, 5, 9, 7, 1, tzinfo=KYIV)
    assert parse_bank_datetime("05.03.2024 09:07", KYIV) == datetime(2024, 3, 5, 9, 7, tzinfo=KYIV)
    # Missing time means midnight bank-local.
    assert parse_bank_datetime("05.03.2024", KYIV) == datetime(2024, 3, 5, tzinfo=KYIV)


def test_malformed_date_falls_back_to_now_with_warning() -> None:
    before = datetime.now(timezone.utc)
    with capture_logs() as logs:
        value = parse_bank_datetime("2024-03-05", KYIV)
    assert value >= before
    assert value.tzinfo is not None
    assert logs[0]["event"] == "bank_date_parse_fallback"
    assert logs[0]["log_level"] == "warning"


def test_impossible_calendar_date_falls_back() -> None:
    with capture_logs() as logs:
        parse_bank_datetime("31.02.2024", KYIV)
    assert [entry["event"] for entry in logs] == ["bank_date_parse_fallback"]


def test_parse_amount_accepts_comma_decimal() -> None:
    assert parse_bank_amount("1 234,50") == Decimal("1234.50")
    assert parse_bank_amount("") is None
    assert parse_bank_amount("n/a") is None


def test_numeric_fields_are_coerced_to_strings() -> None:
    tx = BankTransaction.model_validate({"ID": 123, "SUM_E": 10.5, "TRANTYPE": "C", "UNKNOWN": 1})
    assert tx.id == "123"
    assert tx.amount_credit == "10.5"
    assert is_incoming_credit(tx)


def test_page_tolerates_null_transactions_and_empty_cursor() -> None:
    page = BankStatementPage.model_validate(
        {"status": "SUCCESS", "exist_next_page": False, "next_page_id": "", "transactions": None}
    )
    assert page.transactions == []
    assert page.next_page_id is None
