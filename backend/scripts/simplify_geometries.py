#!/usr/bin/env python3
"""
Simplify every jurisdiction boundary with the configured tolerance.

Topology is preserved but the result is lossy: points closer to a border
than the tolerance (0.0005 degrees, about 55 m, by default) may resolve to
the neighbouring jurisdiction.
"""

import argparse
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings  # noqa: E402
from core.database import SessionLocal  # noqa: E402
from modules.tax.services import geometry_index_cache  # noqa: E402
from modules.tax.services.geometry_service import simplify_jurisdictions  # noqa: E402

logger = logging.getLogger("simplify_geometries")


def main():
    parser = argparse.ArgumentParser(description="Simplify jurisdiction boundaries")
    parser.add_argument(
        "--tolerance",
        type=float,
        default=settings.geometry_simplify_tolerance,
        help="Simplification tolerance in degrees",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    db = SessionLocal()
    try:
        summary = simplify_jurisdictions(db, args.tolerance)
        geometry_index_cache.clear()
    finally:
        db.close()

    logger.info(
        f"{summary['simplified']} of {summary['jurisdictions']} boundaries simplified, "
        f"{summary['skipped']} skipped; vertices {summary['vertices_before']} -> "
        f"{summary['vertices_after']}"
    )


if __name__ == "__main__":
    main()
