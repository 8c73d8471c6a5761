# backend/modules/tax/services/__init__.py

from .jurisdiction_resolver import (
    GeometryIndex,
    JurisdictionRef,
    JurisdictionResolver,
    ResolvedJurisdictions,
    geometry_index_cache,
)
from .mutation_ledger_service import LedgerEntry, MutationLedgerService
from .rate_timeline_service import RateTimelineService
from .jurisdiction_service import JurisdictionService
from .tax_calculation_engine import (
    AppliedJurisdiction,
    TaxCalculationEngine,
    TaxComputation,
)

__all__ = [
    # Spatial
    "GeometryIndex",
    "JurisdictionRef",
    "JurisdictionResolver",
    "ResolvedJurisdictions",
    "geometry_index_cache",
    # Temporal
    "RateTimelineService",
    "MutationLedgerService",
    "LedgerEntry",
    # Jurisdictions
    "JurisdictionService",
    # Computation
    "TaxCalculationEngine",
    "TaxComputation",
    "AppliedJurisdiction",
]
