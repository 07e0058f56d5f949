"""Conversión entre unidades mayores (UAH) y menores (kopiyky).

Regla: `Decimal(str(amount)) * 100` redondeado *half away from zero*
(`ROUND_HALF_UP` de Decimal opera sobre el valor absoluto).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_HUNDRED = Decimal(100)
_CENTS = Decimal("0.01")


def _as_decimal(amount: Decimal | float | int | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() evita arrastrar el error binario del float (50.005 -> 50.00499...).
    try:
        return Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {amount!r}") from exc


def to_minor_units(amount: Decimal | float | int | str) -> int:
    value = _as_decimal(amount)
    if not value.is_finite():
        raise ValueError(f"Invalid monetary amount: {amount!r}")
    return int((value * _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(int(minor)) / _HUNDRED).quantize(_CENTS)


uah_to_kopiyky = to_minor_units
kopiyky_to_uah = from_minor_units
