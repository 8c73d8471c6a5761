import logging
import math
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query, Session

from ..enums.order_enums import ComparisonOperator, OrderSource
from ..models import Order
from ..schemas.order_filter_schemas import (
    DateRangeFilter,
    ImportFilter,
    NumericFilter,
    OrderFilter,
    OrderQuery,
    SourceFilter,
    TextFilter,
)

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class OrderQueryService:
    """Translate typed filters into SQL over stored orders"""

    def __init__(self, db: Session):
        self.db = db

    def apply_filters(self, query: Query, filters: Iterable[OrderFilter]) -> Query:
        for f in filters:
            query = query.filter(self._condition(f))
        return query

    def _condition(self, f: OrderFilter):
        if isinstance(f, DateRangeFilter):
            conditions = []
            if f.start is not None:
                conditions.append(Order.timestamp >= datetime.combine(f.start, time.min))
            if f.end is not None:
                # End day is inclusive
                conditions.append(
                    Order.timestamp < datetime.combine(f.end + timedelta(days=1), time.min)
                )
            return and_(*conditions)

        if isinstance(f, NumericFilter):
            column = getattr(Order, f.field.value)
            if f.op is ComparisonOperator.EQ:
                return column == f.value
            if f.op is ComparisonOperator.GT:
                return column > f.value
            if f.op is ComparisonOperator.GTE:
                return column >= f.value
            if f.op is ComparisonOperator.LT:
                return column < f.value
            if f.op is ComparisonOperator.LTE:
                return column <= f.value
            return column.between(f.value, f.upper)

        if isinstance(f, TextFilter):
            # Names are stored lower-cased and order ids are lower-case uuids
            term = _escape_like(f.value.strip().lower())
            return or_(
                Order.jurisdiction_names.like(f"%{term}%", escape="\\"),
                Order.id.like(f"{term}%", escape="\\"),
            )

        if isinstance(f, SourceFilter):
            if f.value is OrderSource.MANUAL:
                return Order.import_id.is_(None)
            return Order.import_id.isnot(None)

        if isinstance(f, ImportFilter):
            return Order.import_id == f.import_id

        raise ValueError(f"Unsupported filter: {f!r}")

    def search(self, order_query: OrderQuery) -> Dict[str, Any]:
        """One page of orders, newest timestamp first"""
        query = self.apply_filters(self.db.query(Order), order_query.filters)
        total = query.count()
        logger.debug(f"Order search with {len(order_query.filters)} filter(s) matched {total}")
        rows = (
            query.order_by(Order.timestamp.desc(), Order.id.desc())
            .offset((order_query.page - 1) * order_query.limit)
            .limit(order_query.limit)
            .all()
        )
        return {
            "data": rows,
            "total": total,
            "page": order_query.page,
            "limit": order_query.limit,
            "total_pages": math.ceil(total / order_query.limit) if total else 0,
        }
