# backend/modules/tax/schemas/tax_jurisdiction_schemas.py

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import List, Optional, Dict, Any
from datetime import date, datetime
from decimal import Decimal

from ..enums.tax_enums import JurisdictionType, MutationStatus


# Jurisdiction Schemas
class JurisdictionCreate(BaseModel):
    """Schema for creating a jurisdiction"""

    name: str = Field(..., min_length=1, max_length=200)
    type: JurisdictionType
    geometry: Dict[str, Any] = Field(
        ..., description="GeoJSON Polygon or MultiPolygon in lon/lat order"
    )
    initial_rate: Optional[Decimal] = Field(
        None, ge=0, description="Same unit as rate updates (percent by default)"
    )
    effective_date: Optional[date] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_initial_rate(self):
        if (self.initial_rate is None) != (self.effective_date is None):
            raise ValueError("initial_rate and effective_date must be given together")
        return self


class RateIntervalResponse(BaseModel):
    """One interval of a rate timeline; valid_to is exclusive"""

    id: int
    jurisdiction_id: int
    rate: Decimal
    valid_from: date
    valid_to: Optional[date]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class JurisdictionResponse(BaseModel):
    id: int
    name: str
    type: JurisdictionType
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    geometry_simplified_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JurisdictionDetailResponse(JurisdictionResponse):
    geometry: Dict[str, Any]
    timeline: List[RateIntervalResponse] = []


class JurisdictionRefResponse(BaseModel):
    id: int
    name: str
    type: JurisdictionType

    model_config = ConfigDict(from_attributes=True)


class ResolveResponse(BaseModel):
    lat: Decimal
    lon: Decimal
    state: Optional[JurisdictionRefResponse] = None
    county: Optional[JurisdictionRefResponse] = None
    city: Optional[JurisdictionRefResponse] = None
    special: List[JurisdictionRefResponse] = []


# Rate Schemas
class RateAtResponse(BaseModel):
    jurisdiction_id: int
    jurisdiction_name: str
    at: date
    rate: Decimal


class RateUpdateRequest(BaseModel):
    """
    Schema for a rate change.

    ``new_rate`` is read in the configured boundary unit: with the default
    ``percent`` convention 8.875 means 8.875% and is stored as 0.08875.
    """

    jurisdiction_id: int = Field(..., gt=0)
    new_rate: Decimal = Field(..., ge=0)
    effective_date: date
    note: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(extra="forbid")


class RateTableEntry(BaseModel):
    jurisdiction: JurisdictionResponse
    intervals: List[RateIntervalResponse]


# Mutation Ledger Schemas
class LedgerEntryResponse(BaseModel):
    id: int
    jurisdiction_id: int
    jurisdiction_name: Optional[str] = None
    action: str
    status: MutationStatus
    old_rate: Optional[Decimal]
    new_rate: Optional[Decimal]
    effective_date: date
    rate_id: Optional[int]
    previous_rate_id: Optional[int]
    reverts_mutation_id: Optional[int]
    reverted_by_id: Optional[int] = None
    note: Optional[str]
    created_at: datetime

    @classmethod
    def from_entry(cls, entry) -> "LedgerEntryResponse":
        mutation = entry.mutation
        return cls(
            id=mutation.id,
            jurisdiction_id=mutation.jurisdiction_id,
            jurisdiction_name=entry.jurisdiction_name,
            action=mutation.action,
            status=entry.status,
            old_rate=mutation.old_rate,
            new_rate=mutation.new_rate,
            effective_date=mutation.effective_date,
            rate_id=mutation.rate_id,
            previous_rate_id=mutation.previous_rate_id,
            reverts_mutation_id=mutation.reverts_mutation_id,
            reverted_by_id=entry.reverted_by_id,
            note=mutation.note,
            created_at=mutation.created_at,
        )


class RateMutationResponse(BaseModel):
    """Result of a rate change or revert"""

    mutation: LedgerEntryResponse
    current_rate: Optional[RateIntervalResponse] = None
