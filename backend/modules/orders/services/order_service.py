import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import TaxLedgerError
from modules.tax.services import TaxCalculationEngine, TaxComputation
from modules.tax.utils.precision import round_money, to_decimal

from ..exceptions.order_exceptions import OrderNotFoundError
from ..models import Order
from ..schemas.order_filter_schemas import OrderFilter
from ..schemas.order_schemas import OrderCreate, OrderSummary
from .order_query_service import OrderQueryService

logger = logging.getLogger(__name__)


def jurisdiction_search_text(applied) -> str:
    return "\n".join(j["name"].lower() for j in applied)


def build_order(result: TaxComputation, import_id: Optional[str] = None) -> Order:
    """Snapshot a tax computation as an Order row"""
    applied = result.applied()
    return Order(
        lat=result.lat,
        lon=result.lon,
        subtotal=result.subtotal,
        composite_tax_rate=result.composite_tax_rate,
        tax_amount=result.tax_amount,
        total_amount=result.total_amount,
        breakdown=result.breakdown(),
        jurisdictions_applied=applied,
        jurisdiction_names=jurisdiction_search_text(applied),
        timestamp=result.timestamp,
        import_id=import_id,
    )


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.engine = TaxCalculationEngine(db)

    def create_manual_order(self, payload: OrderCreate) -> Order:
        result = self.engine.compute(
            payload.lat, payload.lon, payload.subtotal, payload.timestamp
        )
        order = build_order(result)
        try:
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        except TaxLedgerError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error saving manual order: {str(e)}")
            raise

        logger.info(
            f"Manual order {order.id}: subtotal {order.subtotal} at "
            f"{order.composite_tax_rate} -> tax {order.tax_amount}"
        )
        return order

    def get_order(self, order_id: str) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def summary(self, filters: Iterable[OrderFilter] = ()) -> OrderSummary:
        query = self.db.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.subtotal), 0),
            func.coalesce(func.sum(Order.tax_amount), 0),
            func.coalesce(func.sum(Order.total_amount), 0),
        )
        query = OrderQueryService(self.db).apply_filters(query, filters)
        count, subtotal, tax, total = query.one()
        return OrderSummary(
            order_count=count,
            total_subtotal=round_money(to_decimal(subtotal)),
            total_tax=round_money(to_decimal(tax)),
            total_amount=round_money(to_decimal(total)),
        )
