# backend/modules/tax/routes/tax_jurisdiction_routes.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from core.config import settings
from core.database import get_db

from ..enums.tax_enums import JurisdictionType
from ..schemas import (
    JurisdictionCreate,
    JurisdictionResponse,
    JurisdictionDetailResponse,
    RateAtResponse,
    RateIntervalResponse,
    RateMutationResponse,
)
from ..services import JurisdictionService, RateTimelineService
from ..utils.input_validation import normalize_timestamp
from ..utils.precision import rate_from_input
from .tax_rate_routes import mutation_response

router = APIRouter(prefix="/jurisdictions", tags=["Tax Jurisdictions"])


@router.post("", response_model=JurisdictionDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_jurisdiction(
    jurisdiction_data: JurisdictionCreate,
    db: Session = Depends(get_db),
):
    """Create a jurisdiction from a GeoJSON boundary, optionally with its first rate"""
    initial_rate = None
    if jurisdiction_data.initial_rate is not None:
        initial_rate = rate_from_input(jurisdiction_data.initial_rate, settings.rate_input_unit)

    service = JurisdictionService(db)
    jurisdiction = service.create_jurisdiction(
        name=jurisdiction_data.name,
        jurisdiction_type=jurisdiction_data.type,
        geometry=jurisdiction_data.geometry,
        initial_rate=initial_rate,
        effective_date=jurisdiction_data.effective_date,
    )
    return _detail(jurisdiction, RateTimelineService(db).timeline(jurisdiction.id))


@router.get("", response_model=List[JurisdictionResponse])
async def list_jurisdictions(
    jurisdiction_type: Optional[JurisdictionType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
):
    """List jurisdictions, optionally of one type"""
    return JurisdictionService(db).list_jurisdictions(jurisdiction_type)


@router.get("/{jurisdiction_id}", response_model=JurisdictionDetailResponse)
async def get_jurisdiction(jurisdiction_id: int, db: Session = Depends(get_db)):
    """Jurisdiction detail including its full rate timeline, newest first"""
    timeline = RateTimelineService(db)
    jurisdiction = timeline.get_jurisdiction(jurisdiction_id)
    return _detail(jurisdiction, timeline.timeline(jurisdiction_id))


@router.get("/{jurisdiction_id}/rate", response_model=RateAtResponse)
async def get_rate_at(
    jurisdiction_id: int,
    at: Optional[str] = Query(None, description="ISO date or datetime; defaults to now"),
    db: Session = Depends(get_db),
):
    """The rate in effect for a jurisdiction on a date"""
    timeline = RateTimelineService(db)
    jurisdiction = timeline.get_jurisdiction(jurisdiction_id)
    on: date = normalize_timestamp(at).date()
    rate = timeline.rate_at(jurisdiction_id, on)
    return RateAtResponse(
        jurisdiction_id=jurisdiction.id,
        jurisdiction_name=jurisdiction.name,
        at=on,
        rate=rate,
    )


@router.post("/{jurisdiction_id}/revert-last", response_model=RateMutationResponse)
async def revert_last_mutation(jurisdiction_id: int, db: Session = Depends(get_db)):
    """Undo the most recent rate change for a jurisdiction"""
    timeline = RateTimelineService(db)
    entry = timeline.revert_last_mutation(jurisdiction_id)
    return mutation_response(timeline, entry)


def _detail(jurisdiction, intervals) -> JurisdictionDetailResponse:
    base = JurisdictionResponse.model_validate(jurisdiction)
    return JurisdictionDetailResponse(
        **base.model_dump(),
        geometry=jurisdiction.geometry,
        timeline=[RateIntervalResponse.model_validate(i) for i in intervals],
    )
