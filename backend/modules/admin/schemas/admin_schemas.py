from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AdminStats(BaseModel):
    orders: int
    manual_orders: int
    imported_orders: int
    jurisdictions: int
    rate_intervals: int
    imports: int
    last_import_at: Optional[datetime] = None
    ledger_entries: int


class AdminHealth(BaseModel):
    status: HealthStatus
    can_connect: bool
    dialect: Optional[str] = None
    response_time_ms: float
    timeline_violations: int = 0
    checked_at: datetime
