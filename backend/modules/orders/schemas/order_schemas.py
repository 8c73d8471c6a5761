from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal

from ..enums.order_enums import OrderSource


class OrderCreate(BaseModel):
    """Manual order entry; tax is computed server side"""

    lat: Decimal = Field(..., ge=-90, le=90)
    lon: Decimal = Field(..., ge=-180, le=180)
    subtotal: Decimal = Field(..., gt=0, decimal_places=2)
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class OrderOut(BaseModel):
    id: str
    lat: Decimal
    lon: Decimal
    subtotal: Decimal
    composite_tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    breakdown: Dict[str, Optional[Decimal]]
    jurisdictions_applied: List[Dict[str, Any]]
    timestamp: datetime
    import_id: Optional[str] = None
    source: OrderSource
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    data: List[OrderOut]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderSummary(BaseModel):
    """Simple sums over the orders matching a filter set"""

    order_count: int
    total_subtotal: Decimal
    total_tax: Decimal
    total_amount: Decimal


class ImportRowErrorOut(BaseModel):
    row: int
    reason: str


class ImportLogOut(BaseModel):
    id: str
    filename: str
    file_hash: str
    rows_imported: int
    rows_failed: int
    processing_time_ms: int
    file_size_bytes: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ImportResult(BaseModel):
    import_id: str
    filename: str
    imported: int
    failed: int
    processing_time_ms: int
    file_size_bytes: int
    errors: List[ImportRowErrorOut] = []


class RollbackResult(BaseModel):
    import_id: str
    orders_removed: int
