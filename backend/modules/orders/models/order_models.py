import uuid

from sqlalchemy import (Column, Integer, String, Text, ForeignKey, DateTime,
                        Numeric, JSON, Index, event)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from core.database import Base
from core.exceptions import ImmutableRecordError
from core.mixins import CreatedAtMixin
from ..enums.order_enums import OrderSource

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class ImportLog(Base, CreatedAtMixin):
    """One uploaded CSV batch; deleting it removes every order it created"""
    __tablename__ = "import_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    filename = Column(String(255), nullable=False)
    # SHA-256 of the raw upload bytes
    file_hash = Column(String(64), nullable=False, unique=True, index=True)
    rows_imported = Column(Integer, nullable=False, default=0)
    rows_failed = Column(Integer, nullable=False, default=0)
    processing_time_ms = Column(Integer, nullable=False, default=0)
    file_size_bytes = Column(Integer, nullable=False, default=0)

    orders = relationship(
        "Order",
        back_populates="import_log",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return (f"<ImportLog(id={self.id}, filename='{self.filename}', "
                f"imported={self.rows_imported}, failed={self.rows_failed})>")


class Order(Base, CreatedAtMixin):
    """
    A taxed sale. Amounts, rates and the applied jurisdictions are a
    snapshot taken when the order was computed; later rate changes never
    touch it. Orders are only removed by rolling back their import.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    lat = Column(Numeric(9, 6), nullable=False)
    lon = Column(Numeric(10, 6), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    composite_tax_rate = Column(Numeric(10, 6), nullable=False)
    # Wider than subtotal: total = subtotal * (1 + composite rate)
    tax_amount = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)

    # {"state_rate": "0.040000", "county_rate": ..., "city_rate": ..., "special_rate": ...}
    breakdown = Column(JSONType, nullable=False)
    # [{"id": 1, "name": "...", "type": "state", "rate": "0.040000"}, ...]
    jurisdictions_applied = Column(JSONType, nullable=False)
    # Lower-cased applied names, one per line; searched by the text filter
    jurisdiction_names = Column(Text, nullable=False, default="")

    # UTC, naive
    timestamp = Column(DateTime, nullable=False, index=True)
    import_id = Column(
        String(36),
        ForeignKey("import_logs.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    import_log = relationship("ImportLog", back_populates="orders")

    __table_args__ = (
        Index("idx_orders_timestamp_id", "timestamp", "id"),
    )

    @property
    def source(self) -> OrderSource:
        return OrderSource.MANUAL if self.import_id is None else OrderSource.IMPORT

    def __repr__(self):
        return f"<Order(id={self.id}, subtotal={self.subtotal}, total={self.total_amount})>"


def _reject_order_update(mapper, connection, target):
    raise ImmutableRecordError("Order", target.id, "updated")


event.listen(Order, "before_update", _reject_order_update)
