from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from core.database import get_db

from ..schemas.order_schemas import ImportLogOut, RollbackResult
from ..services.import_service import ImportService

router = APIRouter(prefix="/imports", tags=["Imports"])


@router.get("", response_model=List[ImportLogOut])
async def list_imports(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Most recent import batches first"""
    return ImportService(db).list_imports(limit)


@router.get("/{import_id}", response_model=ImportLogOut)
async def get_import(import_id: str, db: Session = Depends(get_db)):
    return ImportService(db).get_import(import_id)


@router.delete("/{import_id}/rollback", response_model=RollbackResult)
async def rollback_import(import_id: str, db: Session = Depends(get_db)):
    """Delete an import batch together with every order it created"""
    removed = ImportService(db).rollback(import_id)
    return RollbackResult(import_id=import_id, orders_removed=removed)
