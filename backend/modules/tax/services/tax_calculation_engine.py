# backend/modules/tax/services/tax_calculation_engine.py

from sqlalchemy.orm import Session
from typing import List, Dict, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
import logging

from ..enums.tax_enums import JurisdictionType
from ..exceptions.tax_exceptions import NoEffectiveRateError, OutOfCoverageError
from ..utils.input_validation import normalize_timestamp, validate_point, validate_subtotal
from ..utils.precision import calc_tax, format_rate, quantize_rate, sum_rates
from .jurisdiction_resolver import JurisdictionRef, JurisdictionResolver
from .rate_timeline_service import RateTimelineService

logger = logging.getLogger(__name__)


@dataclass
class AppliedJurisdiction:
    id: int
    name: str
    type: JurisdictionType
    rate: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "rate": format_rate(self.rate),
        }


@dataclass
class TaxComputation:
    lat: Decimal
    lon: Decimal
    subtotal: Decimal
    timestamp: datetime
    composite_tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    state_rate: Optional[Decimal] = None
    county_rate: Optional[Decimal] = None
    city_rate: Optional[Decimal] = None
    special_rate: Optional[Decimal] = None
    jurisdictions_applied: List[AppliedJurisdiction] = field(default_factory=list)

    def breakdown(self) -> Dict[str, Optional[str]]:
        return {
            "state_rate": format_rate(self.state_rate),
            "county_rate": format_rate(self.county_rate),
            "city_rate": format_rate(self.city_rate),
            "special_rate": format_rate(self.special_rate),
        }

    def applied(self) -> List[Dict[str, Any]]:
        return [j.to_dict() for j in self.jurisdictions_applied]


class TaxCalculationEngine:
    """Composite sales tax for a point, amount and instant"""

    def __init__(self, db: Session, resolver: Optional[JurisdictionResolver] = None):
        self.db = db
        self.resolver = resolver or JurisdictionResolver(db)
        self.timeline = RateTimelineService(db)

    def compute(self, lat, lon, subtotal, timestamp=None) -> TaxComputation:
        """
        Resolve jurisdictions, look up the rate each had on the timestamp's
        UTC date and sum them.

        The state must resolve and have a rate. A county, city or special
        district without an effective rate on that date contributes nothing
        and is left out of the applied list. Tax is rounded half-up to cents
        once, on the full composite rate.
        """
        lat, lon = validate_point(lat, lon)
        amount = validate_subtotal(subtotal)
        instant = normalize_timestamp(timestamp)
        on = instant.date()

        resolved = self.resolver.resolve(lat, lon)
        if resolved.state is None:
            logger.warning(f"Point ({lat}, {lon}) is outside every state jurisdiction")
            raise OutOfCoverageError(lat, lon)

        applied: List[AppliedJurisdiction] = []
        for ref in resolved.all():
            interval = self.timeline.find_rate_at(ref.id, on)
            if interval is None:
                if ref.type is JurisdictionType.STATE:
                    logger.warning(f"{ref.name} has no effective rate on {on}")
                    raise NoEffectiveRateError(ref.id, on, name=ref.name)
                logger.warning(
                    f"{ref.type.value} jurisdiction {ref.name} ({ref.id}) has no rate on {on}; skipped"
                )
                continue
            applied.append(self._applied(ref, Decimal(interval.rate)))

        by_type = self._rates_by_type(applied)
        composite = quantize_rate(sum_rates(j.rate for j in applied))
        tax_amount, total_amount = calc_tax(amount, composite)

        return TaxComputation(
            lat=lat,
            lon=lon,
            subtotal=amount,
            timestamp=instant,
            composite_tax_rate=composite,
            tax_amount=tax_amount,
            total_amount=total_amount,
            state_rate=by_type.get(JurisdictionType.STATE),
            county_rate=by_type.get(JurisdictionType.COUNTY),
            city_rate=by_type.get(JurisdictionType.CITY),
            special_rate=by_type.get(JurisdictionType.SPECIAL),
            jurisdictions_applied=applied,
        )

    @staticmethod
    def _applied(ref: JurisdictionRef, rate: Decimal) -> AppliedJurisdiction:
        return AppliedJurisdiction(id=ref.id, name=ref.name, type=ref.type, rate=quantize_rate(rate))

    @staticmethod
    def _rates_by_type(applied: List[AppliedJurisdiction]) -> Dict[JurisdictionType, Decimal]:
        # Specials are summed; the other types have at most one entry
        rates: Dict[JurisdictionType, Decimal] = {}
        for j in applied:
            rates[j.type] = rates.get(j.type, Decimal("0")) + j.rate
        return rates
