# backend/modules/tax/routes/tax_rate_routes.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from core.config import settings
from core.database import get_db

from ..enums.tax_enums import MutationAction, MutationStatus
from ..models import TaxRateMutation
from ..schemas import (
    JurisdictionResponse,
    LedgerEntryResponse,
    RateIntervalResponse,
    RateMutationResponse,
    RateTableEntry,
    RateUpdateRequest,
)
from ..services import LedgerEntry, RateTimelineService
from ..utils.precision import rate_from_input

router = APIRouter(tags=["Tax Rates"])


def mutation_response(timeline: RateTimelineService, mutation: TaxRateMutation) -> RateMutationResponse:
    """A freshly written ledger entry plus the jurisdiction's head afterwards."""
    if mutation.action == MutationAction.REVERT.value:
        status = MutationStatus.APPLIED
    else:
        status = MutationStatus.ACTIVE
    entry = LedgerEntry(
        mutation=mutation,
        status=status,
        jurisdiction_name=mutation.jurisdiction.name,
    )
    head = timeline.head(mutation.jurisdiction_id)
    return RateMutationResponse(
        mutation=LedgerEntryResponse.from_entry(entry),
        current_rate=RateIntervalResponse.model_validate(head) if head else None,
    )


@router.get("/rates", response_model=List[RateTableEntry])
async def get_rate_table(db: Session = Depends(get_db)):
    """Every jurisdiction with its rate intervals, newest first"""
    return [
        RateTableEntry(
            jurisdiction=JurisdictionResponse.model_validate(jurisdiction),
            intervals=[RateIntervalResponse.model_validate(i) for i in intervals],
        )
        for jurisdiction, intervals in RateTimelineService(db).rate_table()
    ]


@router.post("/rates/update", response_model=RateMutationResponse)
async def update_rate(request: RateUpdateRequest, db: Session = Depends(get_db)):
    """
    Change a jurisdiction's rate from ``effective_date`` on.

    Closes the current interval and opens a new one. Returns 409 when the
    date is not after the current interval's start or when a concurrent
    change won the race.
    """
    timeline = RateTimelineService(db)
    entry = timeline.set_rate(
        request.jurisdiction_id,
        rate_from_input(request.new_rate, settings.rate_input_unit),
        request.effective_date,
        note=request.note,
    )
    return mutation_response(timeline, entry)


@router.get("/ledger", response_model=List[LedgerEntryResponse])
async def get_mutation_ledger(
    jurisdiction_id: Optional[int] = Query(None, gt=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Rate changes newest first, each with its derived status"""
    timeline = RateTimelineService(db)
    if jurisdiction_id is not None:
        timeline.get_jurisdiction(jurisdiction_id)
    return [
        LedgerEntryResponse.from_entry(entry)
        for entry in timeline.ledger.entries(jurisdiction_id=jurisdiction_id, limit=limit)
    ]


@router.post("/ledger/{mutation_id}/revert", response_model=RateMutationResponse)
async def revert_mutation(mutation_id: int, db: Session = Depends(get_db)):
    """Revert one ledger entry; only a jurisdiction's latest change is accepted"""
    timeline = RateTimelineService(db)
    entry = timeline.revert_mutation(mutation_id)
    return mutation_response(timeline, entry)
