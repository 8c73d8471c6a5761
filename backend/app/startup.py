"""
Application startup validation and initialization.

This module performs startup checks so a misconfigured deployment is
reported before serving requests.
"""

import logging
import sys
from typing import List, Tuple

import sqlalchemy as sa
from sqlalchemy import text

from core.config import settings
from core.database import engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES = [
    "jurisdictions",
    "tax_rates",
    "tax_rate_mutations",
    "orders",
    "import_logs",
]


class StartupValidator:
    """Validates application startup requirements"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def check_database_connection(self) -> bool:
        """Check database connectivity"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info(f"Database connection successful ({engine.dialect.name})")
            return True
        except Exception as e:
            self.errors.append(f"Database connection failed: {str(e)}")
            return False

    def check_environment_config(self) -> bool:
        if settings.is_production and settings.debug:
            self.errors.append("DEBUG must be off in production")
            return False
        if settings.is_production and engine.dialect.name != "postgresql":
            self.warnings.append(
                "Production is not running on PostgreSQL; range exclusion "
                "constraints are only available there"
            )
        return True

    def check_required_tables(self) -> bool:
        """Check if required database tables exist"""
        try:
            existing_tables = sa.inspect(engine).get_table_names()
            missing_tables = [t for t in REQUIRED_TABLES if t not in existing_tables]
            if missing_tables:
                self.warnings.append(
                    f"Missing database tables: {', '.join(missing_tables)}. "
                    "Run migrations with: alembic upgrade head"
                )
            return True
        except Exception as e:
            self.warnings.append(f"Could not check database tables: {str(e)}")
            return True

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """Run all validation checks"""
        checks = [
            ("Environment Configuration", self.check_environment_config),
            ("Database Connection", self.check_database_connection),
            ("Database Tables", self.check_required_tables),
        ]

        all_passed = True

        for check_name, check_func in checks:
            logger.info(f"Running check: {check_name}")
            try:
                if not check_func():
                    all_passed = False
            except Exception as e:
                self.errors.append(f"{check_name} check failed with error: {str(e)}")
                all_passed = False

        return all_passed, self.errors, self.warnings


def run_startup_checks():
    """Run all startup validation checks"""
    logger.info("=" * 60)
    logger.info("Starting NYS Tax Ledger")
    logger.info(f"Environment: {settings.environment}")
    logger.info("=" * 60)

    validator = StartupValidator()
    passed, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Startup warning: {warning}")
    for error in errors:
        logger.error(f"Startup error: {error}")

    if not passed and settings.is_production:
        logger.error("Cannot start in production with errors!")
        sys.exit(1)
    elif not passed:
        logger.warning("Starting in development mode despite errors")
    else:
        logger.info("All startup checks passed")

    logger.info(
        f"Geometry tolerance {settings.geometry_simplify_tolerance} deg, "
        f"rate input unit '{settings.rate_input_unit}', "
        f"upload limit {settings.max_upload_size_mb} MB"
    )
    return passed, warnings


def configure_startup_logging():
    """Configure logging for startup"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
