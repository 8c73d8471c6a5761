# backend/modules/tax/models/jurisdiction_models.py

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Text, Float, DDL,
    ForeignKey, UniqueConstraint, CheckConstraint, Index, JSON, event, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from core.database import Base
from core.exceptions import ImmutableRecordError
from core.mixins import CreatedAtMixin, TimestampMixin

from ..enums.tax_enums import JurisdictionType, MutationAction

GeoJSON = JSON().with_variant(JSONB(), "postgresql")

_TYPE_VALUES = ", ".join(f"'{t.value}'" for t in JurisdictionType)


class Jurisdiction(Base, TimestampMixin):
    """A taxing authority (state, county, city or special district) and its boundary"""
    __tablename__ = "jurisdictions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    jurisdiction_type = Column(String(20), nullable=False, index=True)

    # GeoJSON MultiPolygon in EPSG:4326 (lon, lat ordering)
    geometry = Column(GeoJSON, nullable=False)

    # Bounding box, kept in sync with geometry
    min_lon = Column(Float, nullable=False)
    min_lat = Column(Float, nullable=False)
    max_lon = Column(Float, nullable=False)
    max_lat = Column(Float, nullable=False)

    geometry_simplified_at = Column(DateTime, nullable=True)

    rates = relationship(
        "TaxRate",
        back_populates="jurisdiction",
        order_by="TaxRate.valid_from.desc()",
    )

    __table_args__ = (
        UniqueConstraint("name", "jurisdiction_type", name="uq_jurisdiction_name_type"),
        CheckConstraint(
            f"jurisdiction_type IN ({_TYPE_VALUES})", name="ck_jurisdiction_type"
        ),
        Index("idx_jurisdiction_bbox", "min_lon", "max_lon", "min_lat", "max_lat"),
    )

    @property
    def type(self) -> JurisdictionType:
        return JurisdictionType(self.jurisdiction_type)

    def __repr__(self):
        return f"<Jurisdiction(id={self.id}, name='{self.name}', type='{self.jurisdiction_type}')>"


class TaxRate(Base, CreatedAtMixin):
    """
    One interval of a jurisdiction's rate timeline.

    ``valid_from`` is inclusive, ``valid_to`` exclusive; ``valid_to IS NULL``
    marks the head (currently open) interval. Rows are only written by
    RateTimelineService.set_rate / revert.
    """
    __tablename__ = "tax_rates"

    id = Column(Integer, primary_key=True, index=True)
    jurisdiction_id = Column(
        Integer, ForeignKey("jurisdictions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Stored as a fraction, e.g. 0.045000 for 4.5%
    rate = Column(Numeric(10, 6), nullable=False)
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=True)

    jurisdiction = relationship("Jurisdiction", back_populates="rates")

    __table_args__ = (
        UniqueConstraint("jurisdiction_id", "valid_from", name="uq_tax_rate_jurisdiction_valid_from"),
        CheckConstraint("rate >= 0 AND rate < 1", name="ck_tax_rate_fraction"),
        CheckConstraint(
            "valid_to IS NULL OR valid_to > valid_from", name="ck_tax_rate_interval_order"
        ),
        # At most one open interval per jurisdiction
        Index(
            "uq_tax_rate_open_head",
            "jurisdiction_id",
            unique=True,
            postgresql_where=text("valid_to IS NULL"),
            sqlite_where=text("valid_to IS NULL"),
        ),
        Index("idx_tax_rate_validity", "valid_from", "valid_to"),
    )

    def __repr__(self):
        return (
            f"<TaxRate(jurisdiction_id={self.jurisdiction_id}, rate={self.rate}, "
            f"[{self.valid_from}, {self.valid_to}))>"
        )


class TaxRateMutation(Base, CreatedAtMixin):
    """
    Append-only audit entry for every rate change.

    A ``set`` entry records old/new rate for one SCD mutation. A ``revert``
    entry undoes exactly one ``set`` entry and references it through
    ``reverts_mutation_id``; the reverted entry itself is never modified.
    """
    __tablename__ = "tax_rate_mutations"

    id = Column(Integer, primary_key=True, index=True)
    jurisdiction_id = Column(
        Integer, ForeignKey("jurisdictions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action = Column(String(10), nullable=False)

    # Interval ids as they were at the time of the change. Not foreign keys:
    # a revert deletes the interval and the entry must stay untouched.
    rate_id = Column(Integer, nullable=True)
    previous_rate_id = Column(Integer, nullable=True)

    old_rate = Column(Numeric(10, 6), nullable=True)
    new_rate = Column(Numeric(10, 6), nullable=True)
    effective_date = Column(Date, nullable=False)

    reverts_mutation_id = Column(
        Integer, ForeignKey("tax_rate_mutations.id"), nullable=True, unique=True
    )
    note = Column(Text, nullable=True)

    jurisdiction = relationship("Jurisdiction")

    __table_args__ = (
        CheckConstraint(
            f"action IN ('{MutationAction.SET.value}', '{MutationAction.REVERT.value}')",
            name="ck_tax_rate_mutation_action",
        ),
        CheckConstraint(
            "(action = 'revert') = (reverts_mutation_id IS NOT NULL)",
            name="ck_tax_rate_mutation_revert_ref",
        ),
        Index("idx_tax_rate_mutation_jurisdiction_id", "jurisdiction_id", "id"),
    )


# ─── Storage-level no-overlap guarantee ─────────────────────────
# PostgreSQL: exclusion constraint over daterange with [) semantics.
event.listen(
    TaxRate.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    TaxRate.__table__,
    "after_create",
    DDL(
        "ALTER TABLE tax_rates ADD CONSTRAINT no_overlapping_rates "
        "EXCLUDE USING gist (jurisdiction_id WITH =, "
        "daterange(valid_from, valid_to, '[)') WITH &&)"
    ).execute_if(dialect="postgresql"),
)

# SQLite has no exclusion constraints; triggers abort the offending statement.
_SQLITE_OVERLAP_TRIGGER = """
CREATE TRIGGER IF NOT EXISTS trg_tax_rates_no_overlap_{name}
BEFORE {event} ON tax_rates
FOR EACH ROW
WHEN EXISTS (
    SELECT 1 FROM tax_rates r
    WHERE r.jurisdiction_id = NEW.jurisdiction_id
      AND r.id IS NOT NEW.id
      AND r.valid_from < COALESCE(NEW.valid_to, '9999-12-31')
      AND COALESCE(r.valid_to, '9999-12-31') > NEW.valid_from
)
BEGIN
    SELECT RAISE(ABORT, 'no_overlapping_rates');
END
"""

for _name, _event in (
    ("insert", "INSERT"),
    ("update", "UPDATE OF jurisdiction_id, valid_from, valid_to"),
):
    event.listen(
        TaxRate.__table__,
        "after_create",
        DDL(_SQLITE_OVERLAP_TRIGGER.format(name=_name, event=_event)).execute_if(
            dialect="sqlite"
        ),
    )


# ─── Append-only ledger ─────────────────────────────────────────
def _reject_ledger_update(mapper, connection, target):
    raise ImmutableRecordError("TaxRateMutation", target.id, "updated")


def _reject_ledger_delete(mapper, connection, target):
    raise ImmutableRecordError("TaxRateMutation", target.id, "deleted")


event.listen(TaxRateMutation, "before_update", _reject_ledger_update)
event.listen(TaxRateMutation, "before_delete", _reject_ledger_delete)
