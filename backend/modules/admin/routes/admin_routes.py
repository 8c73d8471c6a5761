from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db

from ..schemas.admin_schemas import AdminHealth, AdminStats
from ..services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/stats", response_model=AdminStats)
async def get_stats(db: Session = Depends(get_db)):
    """Row counts across orders, imports, jurisdictions and the rate ledger"""
    return AdminService(db).stats()


@router.get("/health", response_model=AdminHealth)
async def get_health(db: Session = Depends(get_db)):
    return AdminService(db).health()
