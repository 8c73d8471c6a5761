# backend/modules/tax/utils/input_validation.py

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple, Union

from ..exceptions.tax_exceptions import InvalidInputError
from .precision import MONEY_QUANT, RATE_QUANT, to_decimal

MAX_SUBTOTAL = Decimal("9999999999.99")


def validate_point(lat, lon) -> Tuple[Decimal, Decimal]:
    try:
        lat_d = to_decimal(lat)
    except (ValueError, TypeError):
        raise InvalidInputError("lat", "must be a number")
    try:
        lon_d = to_decimal(lon)
    except (ValueError, TypeError):
        raise InvalidInputError("lon", "must be a number")

    if not Decimal("-90") <= lat_d <= Decimal("90"):
        raise InvalidInputError("lat", "must be between -90 and 90")
    if not Decimal("-180") <= lon_d <= Decimal("180"):
        raise InvalidInputError("lon", "must be between -180 and 180")
    return lat_d, lon_d


def validate_subtotal(subtotal) -> Decimal:
    try:
        value = to_decimal(subtotal)
    except (ValueError, TypeError):
        raise InvalidInputError("subtotal", "must be a number")

    if value <= 0:
        raise InvalidInputError("subtotal", "must be a positive amount")
    if value > MAX_SUBTOTAL:
        raise InvalidInputError("subtotal", f"must not exceed {MAX_SUBTOTAL}")
    if value != value.quantize(MONEY_QUANT):
        raise InvalidInputError("subtotal", "must have at most 2 decimal places")
    return value.quantize(MONEY_QUANT)


def validate_rate(rate: Decimal) -> Decimal:
    if rate < 0 or rate >= 1:
        raise InvalidInputError("new_rate", "must be at least 0% and below 100%")
    if rate != rate.quantize(RATE_QUANT):
        raise InvalidInputError("new_rate", "must have at most 6 decimal places as a fraction")
    return rate.quantize(RATE_QUANT)


def normalize_timestamp(value: Optional[Union[str, datetime, date]] = None) -> datetime:
    """
    Return a naive UTC datetime.

    None means "now"; aware values are converted to UTC; naive values are
    taken to already be UTC; plain dates mean midnight UTC.
    """
    if value is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInputError("timestamp", "must be a valid ISO 8601 date or datetime")

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    raise InvalidInputError("timestamp", "must be a valid ISO 8601 date or datetime")


def as_rate_date(value: Union[date, datetime, str]) -> date:
    """The calendar date (UTC) a rate lookup is made against."""
    if isinstance(value, datetime):
        return normalize_timestamp(value).date()
    if isinstance(value, date):
        return value
    return normalize_timestamp(value).date()
