import logging
import time
from datetime import datetime, timezone

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from modules.orders.models import ImportLog, Order
from modules.tax.models import Jurisdiction, TaxRate, TaxRateMutation
from modules.tax.services import RateTimelineService

from ..schemas.admin_schemas import AdminHealth, AdminStats, HealthStatus

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, db: Session):
        self.db = db

    def stats(self) -> AdminStats:
        orders = self.db.query(func.count(Order.id)).scalar()
        manual = self.db.query(func.count(Order.id)).filter(Order.import_id.is_(None)).scalar()
        return AdminStats(
            orders=orders,
            manual_orders=manual,
            imported_orders=orders - manual,
            jurisdictions=self.db.query(func.count(Jurisdiction.id)).scalar(),
            rate_intervals=self.db.query(func.count(TaxRate.id)).scalar(),
            imports=self.db.query(func.count(ImportLog.id)).scalar(),
            last_import_at=self.db.query(func.max(ImportLog.created_at)).scalar(),
            ledger_entries=self.db.query(func.count(TaxRateMutation.id)).scalar(),
        )

    def health(self) -> AdminHealth:
        """Database round trip plus a full rate timeline invariant check"""
        start_time = time.perf_counter()
        checked_at = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            self.db.execute(text("SELECT 1")).fetchone()
            response_time_ms = (time.perf_counter() - start_time) * 1000
            violations = RateTimelineService(self.db).verify_timeline()
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            self.db.rollback()
            return AdminHealth(
                status=HealthStatus.UNHEALTHY,
                can_connect=False,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                checked_at=checked_at,
            )

        if violations:
            logger.error(f"Rate timeline has {len(violations)} invariant violation(s): {violations[:5]}")
            status = HealthStatus.UNHEALTHY
        elif response_time_ms > 500:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        return AdminHealth(
            status=status,
            can_connect=True,
            dialect=self.db.get_bind().dialect.name,
            response_time_ms=round(response_time_ms, 2),
            timeline_violations=len(violations),
            checked_at=checked_at,
        )
