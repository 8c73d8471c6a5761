# backend/modules/orders/tests/factories.py

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from modules.orders.schemas.order_schemas import OrderCreate
from modules.orders.services.order_service import OrderService
from modules.tax.tests.factories import MANHATTAN_POINT


def csv_bytes(rows: Iterable[Sequence], header: Sequence[str] = ("lat", "lon", "subtotal", "timestamp")) -> bytes:
    lines = [",".join(header)]
    lines.extend(",".join(str(v) for v in row) for row in rows)
    return ("\n".join(lines) + "\n").encode("utf-8")


def manual_order(db, point=MANHATTAN_POINT, subtotal: str = "100.00", timestamp: Optional[str] = None):
    lat, lon = point
    return OrderService(db).create_manual_order(
        OrderCreate(lat=lat, lon=lon, subtotal=Decimal(subtotal), timestamp=timestamp)
    )
