# backend/modules/tax/routes/tax_calculation_routes.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db

from ..schemas import (
    TaxCalculationRequest,
    TaxCalculationResponse,
    ResolveResponse,
    JurisdictionRefResponse,
)
from ..services import JurisdictionResolver, TaxCalculationEngine
from ..utils.input_validation import validate_point

router = APIRouter(tags=["Tax Calculations"])


@router.post("/calculate", response_model=TaxCalculationResponse)
async def calculate_tax(
    request: TaxCalculationRequest,
    db: Session = Depends(get_db),
):
    """
    Calculate sales tax for a point, subtotal and optional timestamp.

    Nothing is persisted. Fails with 422 when the point is outside New York
    or a resolved state has no rate on the timestamp's date.
    """
    engine = TaxCalculationEngine(db)
    result = engine.compute(request.lat, request.lon, request.subtotal, request.timestamp)
    return TaxCalculationResponse.from_computation(result)


@router.get("/resolve", response_model=ResolveResponse)
async def resolve_point(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    db: Session = Depends(get_db),
):
    """List the jurisdictions containing a point"""
    lat_d, lon_d = validate_point(lat, lon)
    resolved = JurisdictionResolver(db).resolve(lat_d, lon_d)

    def ref(j):
        return JurisdictionRefResponse(id=j.id, name=j.name, type=j.type) if j else None

    return ResolveResponse(
        lat=lat_d,
        lon=lon_d,
        state=ref(resolved.state),
        county=ref(resolved.county),
        city=ref(resolved.city),
        special=[ref(j) for j in resolved.special],
    )
