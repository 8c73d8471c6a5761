# backend/modules/tax/schemas/__init__.py

from .tax_schemas import (
    TaxCalculationRequest,
    TaxCalculationResponse,
    TaxBreakdown,
    AppliedJurisdictionResponse,
)

from .tax_jurisdiction_schemas import (
    # Jurisdiction
    JurisdictionCreate,
    JurisdictionResponse,
    JurisdictionDetailResponse,
    JurisdictionRefResponse,
    ResolveResponse,
    # Rate timeline
    RateIntervalResponse,
    RateAtResponse,
    RateUpdateRequest,
    RateTableEntry,
    # Mutation ledger
    LedgerEntryResponse,
    RateMutationResponse,
)

__all__ = [
    "TaxCalculationRequest",
    "TaxCalculationResponse",
    "TaxBreakdown",
    "AppliedJurisdictionResponse",
    "JurisdictionCreate",
    "JurisdictionResponse",
    "JurisdictionDetailResponse",
    "JurisdictionRefResponse",
    "ResolveResponse",
    "RateIntervalResponse",
    "RateAtResponse",
    "RateUpdateRequest",
    "RateTableEntry",
    "LedgerEntryResponse",
    "RateMutationResponse",
]
