"""Exportación JSON de pagos canonicalizados.

Por qué JSON:
- Interoperabilidad con contabilidad/ERP y scripts de conciliación.
- Permite guardar un snapshot del extracto sin depender de la base de datos.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from core.domain.models import CanonicalPayment


def export_payments_json(*, payments: Sequence[CanonicalPayment], output_path: Path) -> Path:
    """Exporta la lista de pagos a JSON UTF-8 con formato estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [payment.model_dump(mode="json") for payment in payments]
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path
