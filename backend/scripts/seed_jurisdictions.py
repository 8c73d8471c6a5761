#!/usr/bin/env python3
"""
Seed New York State taxing jurisdictions.

Boundaries are coarse polygons; counties tile without overlap. Rates are
Publication 718 rates effective 2025-03-01 and go through the rate timeline
so each one lands in the mutation ledger. New York City has no separate
city jurisdiction: the 4.5% county rate of each borough already includes the
city share.

Jurisdictions that already exist are left untouched, so the script can be
re-run safely.
"""

import logging
import os
import sys
from datetime import date
from decimal import Decimal

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import SessionLocal  # noqa: E402
from modules.tax.enums.tax_enums import JurisdictionType  # noqa: E402
from modules.tax.exceptions.tax_exceptions import DuplicateJurisdictionError  # noqa: E402
from modules.tax.services import JurisdictionResolver, JurisdictionService  # noqa: E402
from modules.tax.services.geometry_service import load_wkt_multipolygon, to_geojson  # noqa: E402

logger = logging.getLogger("seed_jurisdictions")

EFFECTIVE_DATE = date(2025, 3, 1)


def _polygon(*points):
    ring = list(points) + [points[0]]
    return "MULTIPOLYGON(((" + ", ".join(f"{lon} {lat}" for lon, lat in ring) + ")))"


def _box(min_lon, min_lat, max_lon, max_lat):
    return _polygon(
        (min_lon, min_lat), (max_lon, min_lat), (max_lon, max_lat), (min_lon, max_lat)
    )


# County shapes tile without overlap: neighbours share edges only
JURISDICTIONS = [
    ("New York State", JurisdictionType.STATE, _box(-79.763, 40.496, -71.856, 45.016), "0.040000"),
    # NYC boroughs
    ("New York County", JurisdictionType.COUNTY, _box(-74.020, 40.700, -73.930, 40.882), "0.045000"),
    ("Kings County", JurisdictionType.COUNTY, _box(-74.042, 40.570, -73.855, 40.700), "0.045000"),
    (
        "Queens County",
        JurisdictionType.COUNTY,
        _polygon(
            (-73.930, 40.700), (-73.855, 40.700), (-73.855, 40.541),
            (-73.725, 40.541), (-73.725, 40.800), (-73.930, 40.800),
        ),
        "0.045000",
    ),
    ("Bronx County", JurisdictionType.COUNTY, _box(-73.930, 40.800, -73.748, 40.917), "0.045000"),
    ("Richmond County", JurisdictionType.COUNTY, _box(-74.260, 40.496, -74.052, 40.649), "0.045000"),
    # Long Island and upstate
    ("Nassau County", JurisdictionType.COUNTY, _box(-73.725, 40.520, -73.425, 40.900), "0.042500"),
    ("Suffolk County", JurisdictionType.COUNTY, _box(-73.425, 40.600, -71.856, 41.200), "0.042500"),
    ("Westchester County", JurisdictionType.COUNTY, _box(-73.984, 40.917, -73.615, 41.177), "0.040000"),
    ("Albany County", JurisdictionType.COUNTY, _box(-74.260, 42.400, -73.640, 42.800), "0.040000"),
    ("Erie County", JurisdictionType.COUNTY, _box(-79.060, 42.460, -78.460, 43.010), "0.047500"),
    # Metropolitan Commuter Transportation District
    ("MCTD", JurisdictionType.SPECIAL, _box(-74.690, 40.496, -71.856, 41.880), "0.003750"),
]

# Empire State Building
CHECK_POINT = (Decimal("40.7484"), Decimal("-73.9857"))


def seed_jurisdictions(db):
    service = JurisdictionService(db)
    created = 0
    skipped = 0

    for name, jurisdiction_type, wkt_text, rate in JURISDICTIONS:
        try:
            service.create_jurisdiction(
                name=name,
                jurisdiction_type=jurisdiction_type,
                geometry=to_geojson(load_wkt_multipolygon(wkt_text)),
                initial_rate=Decimal(rate),
                effective_date=EFFECTIVE_DATE,
            )
        except DuplicateJurisdictionError:
            logger.info(f"{name} already exists, skipped")
            skipped += 1
            continue

        logger.info(f"{jurisdiction_type.value:<8} | {name:<20} | {rate}")
        created += 1

    return created, skipped


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info(f"Seeding jurisdictions (Publication 718, effective {EFFECTIVE_DATE})")

    db = SessionLocal()
    try:
        created, skipped = seed_jurisdictions(db)
        logger.info(f"Seed complete: {created} created, {skipped} already present")

        resolved = JurisdictionResolver(db).resolve(*CHECK_POINT)
        if resolved.is_empty:
            logger.warning("Spot check matched no jurisdictions; check the boundaries")
        for ref in resolved.all():
            logger.info(f"Spot check {CHECK_POINT}: {ref.type.value} {ref.name}")
    except Exception as e:
        logger.error(f"Error seeding jurisdictions: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
