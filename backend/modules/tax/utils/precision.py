# backend/modules/tax/utils/precision.py

"""
Exact decimal helpers for rates and money.

Rates are carried at 6 decimal places, amounts at 2. Tax is rounded once,
ROUND_HALF_UP, after the subtotal is multiplied by the full composite rate.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

RATE_QUANT = Decimal("0.000001")
MONEY_QUANT = Decimal("0.01")
PERCENT = Decimal("100")


def to_decimal(value) -> Decimal:
    """Convert str/int/float/Decimal to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"'{value}' is not a decimal number")
    if not result.is_finite():
        raise ValueError(f"'{value}' is not a finite number")
    return result


def quantize_rate(rate: Decimal) -> Decimal:
    return rate.quantize(RATE_QUANT, rounding=ROUND_HALF_UP)


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def sum_rates(rates: Iterable[Optional[Decimal]]) -> Decimal:
    """Flat sum of rates, ignoring None."""
    total = Decimal("0")
    for rate in rates:
        if rate is not None:
            total += rate
    return total


def calc_tax(subtotal: Decimal, composite_rate: Decimal) -> Tuple[Decimal, Decimal]:
    """Return (tax_amount, total_amount) for a subtotal at a composite rate."""
    tax_amount = round_money(subtotal * composite_rate)
    return tax_amount, round_money(subtotal + tax_amount)


def rate_from_input(value, unit: str = "percent") -> Decimal:
    """Convert a boundary rate (8.875 percent or 0.08875 fraction) to a fraction."""
    rate = to_decimal(value)
    if unit == "percent":
        rate = rate / PERCENT
    return rate


def format_rate(rate: Optional[Decimal]) -> Optional[str]:
    if rate is None:
        return None
    return str(quantize_rate(rate))
