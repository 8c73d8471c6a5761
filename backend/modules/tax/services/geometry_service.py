# backend/modules/tax/services/geometry_service.py

"""
Jurisdiction boundary handling.

Boundaries are stored as GeoJSON MultiPolygons (lon/lat, EPSG:4326) and
loaded into shapely for containment tests. Simplification is lossy: with the
default tolerance of 0.0005 degrees (about 55 m) a point closer than that to
a boundary can be assigned to the neighbouring jurisdiction.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import shapely
from shapely import wkt
from shapely.errors import GEOSException, ShapelyError
from shapely.geometry import MultiPolygon, Polygon, mapping, shape
from shapely.validation import explain_validity
from sqlalchemy.orm import Session

from ..exceptions.tax_exceptions import InvalidGeometryError
from ..models import Jurisdiction

logger = logging.getLogger(__name__)


def load_multipolygon(geojson: Dict[str, Any]) -> MultiPolygon:
    """Parse a GeoJSON Polygon/MultiPolygon into a valid shapely MultiPolygon."""
    if not isinstance(geojson, dict) or "type" not in geojson:
        raise InvalidGeometryError("expected a GeoJSON geometry object")

    try:
        geom = shape(geojson)
    except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as e:
        raise InvalidGeometryError(str(e))

    return _as_multipolygon(geom)


def load_wkt_multipolygon(text: str) -> MultiPolygon:
    try:
        geom = wkt.loads(text)
    except (GEOSException, ShapelyError) as e:
        raise InvalidGeometryError(str(e))
    return _as_multipolygon(geom)


def _as_multipolygon(geom) -> MultiPolygon:
    if isinstance(geom, Polygon):
        geom = MultiPolygon([geom])
    if not isinstance(geom, MultiPolygon):
        raise InvalidGeometryError(f"{geom.geom_type} is not a Polygon or MultiPolygon")
    if geom.is_empty:
        raise InvalidGeometryError("geometry is empty")
    if not geom.is_valid:
        raise InvalidGeometryError(explain_validity(geom))
    return geom


def to_geojson(geom: MultiPolygon) -> Dict[str, Any]:
    """GeoJSON mapping with lists instead of tuples so it round-trips through JSON."""
    data = mapping(geom)
    return {
        "type": data["type"],
        "coordinates": [
            [[list(point) for point in ring] for ring in polygon]
            for polygon in data["coordinates"]
        ],
    }


def bbox_columns(geom: MultiPolygon) -> Dict[str, float]:
    min_lon, min_lat, max_lon, max_lat = geom.bounds
    return {"min_lon": min_lon, "min_lat": min_lat, "max_lon": max_lon, "max_lat": max_lat}


def apply_geometry(jurisdiction: Jurisdiction, geom: MultiPolygon) -> None:
    """Store geometry and its bounding box on a jurisdiction row."""
    jurisdiction.geometry = to_geojson(geom)
    for column, value in bbox_columns(geom).items():
        setattr(jurisdiction, column, value)


def simplify_multipolygon(geom: MultiPolygon, tolerance: float) -> Optional[MultiPolygon]:
    """Topology-preserving simplification; None if the result is unusable."""
    simplified = geom.simplify(tolerance, preserve_topology=True)
    if isinstance(simplified, Polygon):
        simplified = MultiPolygon([simplified])
    if (
        not isinstance(simplified, MultiPolygon)
        or simplified.is_empty
        or not simplified.is_valid
    ):
        return None
    return simplified


def simplify_jurisdictions(db: Session, tolerance: float) -> Dict[str, int]:
    """
    Simplify every jurisdiction boundary in place.

    Returns vertex counts before and after plus how many rows changed.
    """
    summary = {"jurisdictions": 0, "simplified": 0, "skipped": 0,
               "vertices_before": 0, "vertices_after": 0}
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    try:
        for jurisdiction in db.query(Jurisdiction).order_by(Jurisdiction.id).all():
            summary["jurisdictions"] += 1
            geom = load_multipolygon(jurisdiction.geometry)
            before = shapely.get_num_coordinates(geom)
            summary["vertices_before"] += before

            simplified = simplify_multipolygon(geom, tolerance)
            if simplified is None:
                logger.warning(
                    "Skipping simplification of %s (id=%s): result would be invalid",
                    jurisdiction.name, jurisdiction.id,
                )
                summary["skipped"] += 1
                summary["vertices_after"] += before
                continue

            after = shapely.get_num_coordinates(simplified)
            summary["vertices_after"] += after
            if after < before:
                apply_geometry(jurisdiction, simplified)
                summary["simplified"] += 1
            jurisdiction.geometry_simplified_at = now

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Simplified %d of %d jurisdictions at tolerance %s: %d -> %d vertices",
        summary["simplified"], summary["jurisdictions"], tolerance,
        summary["vertices_before"], summary["vertices_after"],
    )
    return summary
