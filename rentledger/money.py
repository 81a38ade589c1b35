"""Integer-cent arithmetic helpers.

Amounts are always ints in minor units. Fractions only appear while applying a
percentage or a proration ratio, and are resolved with ROUND_HALF_UP.
"""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value):
    return int(Decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def clamp_percentage(pct):
    return max(0, min(100, pct or 0))


def percent_of(amount, pct):
    """Share of ``amount`` cents for a 0-100 percentage, rounded half-up to the cent."""
    return round_half_up(Decimal(amount) * Decimal(clamp_percentage(pct)) / Decimal(100))


def prorate(amount, days, days_in_period):
    if days >= days_in_period:
        return amount
    return round_half_up(Decimal(amount) * Decimal(days) / Decimal(days_in_period))
