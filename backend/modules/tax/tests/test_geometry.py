# backend/modules/tax/tests/test_geometry.py

import math

import pytest
from shapely.geometry import MultiPolygon

from modules.tax.enums.tax_enums import JurisdictionType
from modules.tax.exceptions.tax_exceptions import InvalidGeometryError
from modules.tax.models import Jurisdiction
from modules.tax.services import JurisdictionResolver, geometry_index_cache
from modules.tax.services.geometry_service import (
    load_multipolygon,
    load_wkt_multipolygon,
    simplify_jurisdictions,
    to_geojson,
)
from modules.tax.services.jurisdiction_service import JurisdictionService

from .factories import MANHATTAN_POINT, box


def circle(lon, lat, radius, points=720):
    ring = [
        [lon + radius * math.cos(2 * math.pi * i / points),
         lat + radius * math.sin(2 * math.pi * i / points)]
        for i in range(points)
    ]
    ring.append(ring[0])
    return {"type": "Polygon", "coordinates": [ring]}


class TestLoadGeometry:
    def test_polygon_is_promoted_to_multipolygon(self):
        polygon = box(-74.1, 40.6, -73.9, 40.8)["coordinates"][0]

        geom = load_multipolygon({"type": "Polygon", "coordinates": polygon})

        assert isinstance(geom, MultiPolygon)
        assert geom.bounds == (-74.1, 40.6, -73.9, 40.8)

    def test_geojson_output_uses_lists(self):
        geom = load_multipolygon(box(-74.1, 40.6, -73.9, 40.8))

        data = to_geojson(geom)

        assert data["type"] == "MultiPolygon"
        assert isinstance(data["coordinates"][0][0][0], list)
        assert load_multipolygon(data).equals(geom)

    def test_wkt(self):
        geom = load_wkt_multipolygon("POLYGON((-74 40, -73 40, -73 41, -74 41, -74 40))")

        assert isinstance(geom, MultiPolygon)
        assert geom.area == pytest.approx(1.0)

    @pytest.mark.parametrize(
        "geojson",
        [
            None,
            {"coordinates": []},
            {"type": "Point", "coordinates": [-74.0, 40.7]},
            {"type": "Polygon", "coordinates": "not a ring"},
            # Self-intersecting bow tie
            {"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [1, 0], [0, 1], [0, 0]]]},
        ],
    )
    def test_invalid_geometry_rejected(self, geojson):
        with pytest.raises(InvalidGeometryError) as exc_info:
            load_multipolygon(geojson)

        assert exc_info.value.status_code == 400

    def test_bad_wkt_rejected(self):
        with pytest.raises(InvalidGeometryError):
            load_wkt_multipolygon("POLYGON((nonsense")

    def test_bounding_box_stored(self, db_session):
        jurisdiction = JurisdictionService(db_session).create_jurisdiction(
            "Test County", JurisdictionType.COUNTY, box(-74.1, 40.6, -73.9, 40.8)
        )

        assert (jurisdiction.min_lon, jurisdiction.min_lat) == (-74.1, 40.6)
        assert (jurisdiction.max_lon, jurisdiction.max_lat) == (-73.9, 40.8)


class TestSimplify:
    def test_dense_boundary_is_simplified(self, db_session):
        JurisdictionService(db_session).create_jurisdiction(
            "Round County", JurisdictionType.COUNTY, circle(-74.0, 40.7, 0.2)
        )

        summary = simplify_jurisdictions(db_session, tolerance=0.001)

        assert summary["jurisdictions"] == 1
        assert summary["simplified"] == 1
        assert summary["vertices_after"] < summary["vertices_before"]

        stored = db_session.query(Jurisdiction).one()
        assert stored.geometry["type"] == "MultiPolygon"
        assert stored.geometry_simplified_at is not None
        assert load_multipolygon(stored.geometry).is_valid

    def test_box_is_left_alone(self, db_session):
        JurisdictionService(db_session).create_jurisdiction(
            "Square County", JurisdictionType.COUNTY, box(-74.1, 40.6, -73.9, 40.8)
        )

        summary = simplify_jurisdictions(db_session, tolerance=0.001)

        assert summary["simplified"] == 0
        assert summary["vertices_after"] == summary["vertices_before"]
        assert db_session.query(Jurisdiction).one().geometry_simplified_at is not None

    def test_resolution_still_works_after_simplify(self, db_session, nyc):
        JurisdictionService(db_session).create_jurisdiction(
            "Round District", JurisdictionType.SPECIAL, circle(-74.0, 40.7, 0.2)
        )
        simplify_jurisdictions(db_session, tolerance=0.0005)
        geometry_index_cache.clear()

        resolved = JurisdictionResolver(db_session).resolve(*MANHATTAN_POINT)

        assert resolved.county.name == "New York County"
        assert [s.name for s in resolved.special] == ["Round District"]
