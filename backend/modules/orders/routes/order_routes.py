from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from decimal import Decimal

from core.config import settings
from core.database import get_db
from core.exceptions import ValidationError

from ..enums.order_enums import ComparisonOperator, NumericField, OrderSource
from ..schemas.order_filter_schemas import (
    DateRangeFilter,
    ImportFilter,
    NumericFilter,
    OrderFilter,
    OrderQuery,
    SourceFilter,
    TextFilter,
)
from ..schemas.order_schemas import (
    ImportResult,
    ImportRowErrorOut,
    OrderCreate,
    OrderListResponse,
    OrderOut,
    OrderSummary,
)
from ..services.import_service import ImportService
from ..services.order_query_service import OrderQueryService
from ..services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


def _range_filter(
    field: NumericField, low: Optional[Decimal], high: Optional[Decimal]
) -> Optional[NumericFilter]:
    if low is not None and high is not None:
        if high < low:
            raise ValidationError(f"max {field.value} must not be below min {field.value}")
        return NumericFilter(
            kind="numeric", field=field, op=ComparisonOperator.BETWEEN, value=low, upper=high
        )
    if low is not None:
        return NumericFilter(kind="numeric", field=field, op=ComparisonOperator.GTE, value=low)
    if high is not None:
        return NumericFilter(kind="numeric", field=field, op=ComparisonOperator.LTE, value=high)
    return None


def order_filters(
    start: Optional[date] = Query(None, description="First day, inclusive (UTC)"),
    end: Optional[date] = Query(None, description="Last day, inclusive (UTC)"),
    q: Optional[str] = Query(
        None, min_length=1, max_length=200, description="Jurisdiction name or order id prefix"
    ),
    source: Optional[OrderSource] = Query(None),
    import_id: Optional[str] = Query(None, max_length=36),
    min_rate: Optional[Decimal] = Query(None, ge=0),
    max_rate: Optional[Decimal] = Query(None, ge=0),
    min_subtotal: Optional[Decimal] = Query(None, ge=0),
    max_subtotal: Optional[Decimal] = Query(None, ge=0),
    min_total: Optional[Decimal] = Query(None, ge=0),
    max_total: Optional[Decimal] = Query(None, ge=0),
) -> List[OrderFilter]:
    """Map flat query parameters onto typed filters"""
    filters: List[OrderFilter] = []
    if start is not None or end is not None:
        if start and end and end < start:
            raise ValidationError("end must not be before start")
        filters.append(DateRangeFilter(kind="date_range", start=start, end=end))
    if q:
        filters.append(TextFilter(kind="text", value=q))
    if source is not None:
        filters.append(SourceFilter(kind="source", value=source))
    if import_id:
        filters.append(ImportFilter(kind="import", import_id=import_id))

    for field, low, high in (
        (NumericField.COMPOSITE_TAX_RATE, min_rate, max_rate),
        (NumericField.SUBTOTAL, min_subtotal, max_subtotal),
        (NumericField.TOTAL_AMOUNT, min_total, max_total),
    ):
        numeric = _range_filter(field, low, high)
        if numeric is not None:
            filters.append(numeric)
    return filters


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    """
    Enter an order by hand.

    Tax is computed from the point and timestamp (default now) and stored
    as an immutable snapshot.
    """
    return OrderService(db).create_manual_order(payload)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    filters: List[OrderFilter] = Depends(order_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Orders newest first, filtered by query parameters"""
    query = OrderQuery(filters=filters, page=page, limit=limit)
    return OrderQueryService(db).search(query)


@router.post("/search", response_model=OrderListResponse)
async def search_orders(order_query: OrderQuery, db: Session = Depends(get_db)):
    """
    Orders matching a typed filter body, e.g.

        {"filters": [{"kind": "numeric", "field": "subtotal", "op": "between",
                      "value": "10", "upper": "50"}], "page": 1, "limit": 20}
    """
    return OrderQueryService(db).search(order_query)


@router.get("/summary", response_model=OrderSummary)
async def get_order_summary(
    filters: List[OrderFilter] = Depends(order_filters),
    db: Session = Depends(get_db),
):
    """Order count and simple sums of subtotal, tax and total"""
    return OrderService(db).summary(filters)


@router.post("/import", response_model=ImportResult, status_code=status.HTTP_201_CREATED)
async def import_orders(
    file: UploadFile = File(..., description="CSV with lat, lon, subtotal[, timestamp]"),
    db: Session = Depends(get_db),
):
    """
    Import a CSV batch.

    Bad rows are skipped and reported; the batch itself succeeds. The same
    file uploaded twice is rejected with 409.
    """
    # One byte over the limit is enough to reject it
    content = await file.read(settings.max_upload_size_bytes + 1)
    outcome = ImportService(db).import_batch(content, file.filename or "upload.csv")
    log = outcome.log
    return ImportResult(
        import_id=log.id,
        filename=log.filename,
        imported=log.rows_imported,
        failed=log.rows_failed,
        processing_time_ms=log.processing_time_ms,
        file_size_bytes=log.file_size_bytes,
        errors=[ImportRowErrorOut(**e.to_dict()) for e in outcome.errors],
    )


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, db: Session = Depends(get_db)):
    return OrderService(db).get_order(order_id)
