from __future__ import annotations

from decimal import Decimal

# Persisted units are pounds and cubic feet; metric values are display-only.
LB_TO_KG = Decimal('0.453592')
FT3_TO_M3 = Decimal('0.0283168')
CUBIC_INCHES_PER_FT3 = Decimal('1728')

WEIGHT_QUANT = Decimal('0.01')
VOLUME_QUANT = Decimal('0.001')


def _as_decimal(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def lb_to_kg(value: Decimal | int | float | str | None) -> Decimal:
    return _as_decimal(value) * LB_TO_KG


def kg_to_lb(value: Decimal | int | float | str | None) -> Decimal:
    return _as_decimal(value) / LB_TO_KG


def ft3_to_m3(value: Decimal | int | float | str | None) -> Decimal:
    return _as_decimal(value) * FT3_TO_M3


def m3_to_ft3(value: Decimal | int | float | str | None) -> Decimal:
    return _as_decimal(value) / FT3_TO_M3


def volume_from_dimensions(length_in, width_in, height_in) -> Decimal | None:
    if not length_in or not width_in or not height_in:
        return None
    cubic_inches = _as_decimal(length_in) * _as_decimal(width_in) * _as_decimal(height_in)
    return (cubic_inches / CUBIC_INCHES_PER_FT3).quantize(VOLUME_QUANT)


def format_weight(weight_lb) -> str:
    return f'{_as_decimal(weight_lb).quantize(WEIGHT_QUANT)} lbs'


def format_volume(volume_ft3) -> str:
    return f'{_as_decimal(volume_ft3).quantize(WEIGHT_QUANT)} ft³'
