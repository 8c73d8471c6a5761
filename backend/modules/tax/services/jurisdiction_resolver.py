# backend/modules/tax/services/jurisdiction_resolver.py

"""
Point-in-polygon resolution of the jurisdictions that apply to a location.

Containment is boundary-inclusive. A point on a shared border between two
polygons of a single-valued type (state, county, city) resolves to the one
with the lowest jurisdiction id so repeated calls are deterministic. Special
districts may overlap freely and all matches are returned.
"""

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from shapely import STRtree
from shapely.geometry import Point
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..enums.tax_enums import JurisdictionType
from ..models import Jurisdiction
from .geometry_service import load_multipolygon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JurisdictionRef:
    id: int
    name: str
    type: JurisdictionType


@dataclass
class ResolvedJurisdictions:
    state: Optional[JurisdictionRef] = None
    county: Optional[JurisdictionRef] = None
    city: Optional[JurisdictionRef] = None
    special: Tuple[JurisdictionRef, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not (self.state or self.county or self.city or self.special)

    def all(self) -> List[JurisdictionRef]:
        """State, county, city, then specials by id."""
        found = [j for j in (self.state, self.county, self.city) if j is not None]
        return found + list(self.special)


class GeometryIndex:
    """Immutable STRtree over every jurisdiction boundary."""

    def __init__(self, entries: List[Tuple[JurisdictionRef, object]]):
        # Sorted by id so candidate order is stable
        entries = sorted(entries, key=lambda e: e[0].id)
        self._refs = [ref for ref, _ in entries]
        self._tree = STRtree([geom for _, geom in entries]) if entries else None

    def __len__(self):
        return len(self._refs)

    def matches(self, lon: float, lat: float) -> List[JurisdictionRef]:
        if self._tree is None:
            return []
        hits = self._tree.query(Point(lon, lat), predicate="intersects")
        return sorted((self._refs[i] for i in hits), key=lambda ref: ref.id)

    def resolve(self, lon: float, lat: float) -> ResolvedJurisdictions:
        result = ResolvedJurisdictions()
        specials = []
        for ref in self.matches(lon, lat):
            if ref.type is JurisdictionType.SPECIAL:
                specials.append(ref)
                continue
            attr = ref.type.value
            kept = getattr(result, attr)
            # Lowest id wins on a shared boundary
            if kept is None:
                setattr(result, attr, ref)
            else:
                logger.debug(
                    f"({lat}, {lon}) is also inside {attr} {ref.name} ({ref.id}); "
                    f"keeping {kept.name} ({kept.id})"
                )
        result.special = tuple(specials)
        return result


class GeometryIndexCache:
    """
    Process-wide cache of the geometry index.

    Only boundaries are cached, never rates. The cache is rebuilt whenever
    the jurisdictions table signature (row count, max id, max updated_at)
    changes or after an explicit ``clear()``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._index: Optional[GeometryIndex] = None
        self._signature = None

    def clear(self):
        with self._lock:
            self._index = None
            self._signature = None

    def get(self, db: Session) -> GeometryIndex:
        signature = tuple(
            db.query(
                func.count(Jurisdiction.id),
                func.max(Jurisdiction.id),
                func.max(Jurisdiction.updated_at),
            ).one()
        )
        with self._lock:
            if self._index is not None and self._signature == signature:
                return self._index

        index = self._build(db)
        with self._lock:
            self._index = index
            self._signature = signature
        return index

    @staticmethod
    def _build(db: Session) -> GeometryIndex:
        rows = db.query(
            Jurisdiction.id,
            Jurisdiction.name,
            Jurisdiction.jurisdiction_type,
            Jurisdiction.geometry,
        ).all()
        entries = [
            (
                JurisdictionRef(id=row.id, name=row.name, type=JurisdictionType(row.jurisdiction_type)),
                load_multipolygon(row.geometry),
            )
            for row in rows
        ]
        logger.info(f"Built geometry index for {len(entries)} jurisdictions")
        return GeometryIndex(entries)


geometry_index_cache = GeometryIndexCache()


class JurisdictionResolver:
    """Find the jurisdictions containing a point"""

    def __init__(self, db: Session, cache: GeometryIndexCache = geometry_index_cache):
        self.db = db
        self.cache = cache

    def resolve(self, lat: Decimal, lon: Decimal) -> ResolvedJurisdictions:
        index = self.cache.get(self.db)
        return index.resolve(float(lon), float(lat))

    def resolve_many(self, points: List[Tuple[Decimal, Decimal]]) -> Dict[Tuple[Decimal, Decimal], ResolvedJurisdictions]:
        """Resolve a batch of (lat, lon) points against a single index snapshot."""
        index = self.cache.get(self.db)
        return {
            (lat, lon): index.resolve(float(lon), float(lat))
            for lat, lon in points
        }
