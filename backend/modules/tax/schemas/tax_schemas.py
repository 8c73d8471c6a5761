# backend/modules/tax/schemas/tax_schemas.py

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from ..enums.tax_enums import JurisdictionType


class TaxCalculationRequest(BaseModel):
    lat: Decimal = Field(..., ge=-90, le=90)
    lon: Decimal = Field(..., ge=-180, le=180)
    subtotal: Decimal = Field(..., gt=0, decimal_places=2)
    timestamp: Optional[datetime] = Field(
        None, description="ISO 8601; defaults to now, naive values are taken as UTC"
    )


class TaxBreakdown(BaseModel):
    """Rate per jurisdiction type; null when no jurisdiction of that type applied"""

    state_rate: Optional[Decimal] = None
    county_rate: Optional[Decimal] = None
    city_rate: Optional[Decimal] = None
    special_rate: Optional[Decimal] = None


class AppliedJurisdictionResponse(BaseModel):
    id: int
    name: str
    type: JurisdictionType
    rate: Decimal


class TaxCalculationResponse(BaseModel):
    lat: Decimal
    lon: Decimal
    subtotal: Decimal
    timestamp: datetime
    composite_tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    breakdown: TaxBreakdown
    jurisdictions_applied: List[AppliedJurisdictionResponse]

    @classmethod
    def from_computation(cls, result) -> "TaxCalculationResponse":
        return cls(
            lat=result.lat,
            lon=result.lon,
            subtotal=result.subtotal,
            timestamp=result.timestamp,
            composite_tax_rate=result.composite_tax_rate,
            tax_amount=result.tax_amount,
            total_amount=result.total_amount,
            breakdown=TaxBreakdown(**result.breakdown()),
            jurisdictions_applied=[
                AppliedJurisdictionResponse(**j) for j in result.applied()
            ],
        )
