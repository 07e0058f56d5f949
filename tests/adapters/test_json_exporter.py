from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from adapters.json_exporter import export_payments_json
from core.domain.models import CanonicalPayment


def test_export_writes_utf8_json(tmp_path: Path) -> None:
    payment = CanonicalPayment(
        external_id="tech-1",
        amount=Decimal("12.50"),
        sender_name="ТОВ Ромашка",
        payment_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
    )
    out = export_payments_json(payments=[payment], output_path=tmp_path / "out" / "payments.json")

    text = out.read_text(encoding="utf-8")
    assert "ТОВ Ромашка" in text
    [row] = json.loads(text)
    assert row["external_id"] == "tech-1"
    assert row["amount"] == "12.50"
