# backend/modules/tax/services/jurisdiction_service.py

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import TaxLedgerError

from ..enums.tax_enums import JurisdictionType
from ..exceptions.tax_exceptions import DuplicateJurisdictionError, InvalidInputError
from ..models import Jurisdiction
from .geometry_service import apply_geometry, load_multipolygon
from .rate_timeline_service import RateTimelineService

logger = logging.getLogger(__name__)


class JurisdictionService:
    """Create and look up taxing jurisdictions"""

    def __init__(self, db: Session):
        self.db = db
        self.timeline = RateTimelineService(db)

    def create_jurisdiction(
        self,
        name: str,
        jurisdiction_type: JurisdictionType,
        geometry: Dict[str, Any],
        initial_rate: Optional[Decimal] = None,
        effective_date: Optional[date] = None,
    ) -> Jurisdiction:
        """
        Create a jurisdiction, optionally with its first rate interval.

        The initial rate goes through ``set_rate`` so it lands in the mutation
        ledger like any other change; both writes share one transaction.
        """
        if (initial_rate is None) != (effective_date is None):
            raise InvalidInputError(
                "effective_date", "initial_rate and effective_date must be given together"
            )

        jurisdiction_type = JurisdictionType(jurisdiction_type)
        geom = load_multipolygon(geometry)

        existing = (
            self.db.query(Jurisdiction)
            .filter(
                Jurisdiction.name == name,
                Jurisdiction.jurisdiction_type == jurisdiction_type.value,
            )
            .first()
        )
        if existing:
            raise DuplicateJurisdictionError(name, jurisdiction_type.value)

        jurisdiction = Jurisdiction(name=name, jurisdiction_type=jurisdiction_type.value)
        apply_geometry(jurisdiction, geom)

        try:
            self.db.add(jurisdiction)
            self.db.flush()
            if initial_rate is not None:
                self.timeline.set_rate(
                    jurisdiction.id,
                    initial_rate,
                    effective_date,
                    note="initial rate",
                    commit=False,
                )
            self.db.commit()
            self.db.refresh(jurisdiction)
        except IntegrityError:
            self.db.rollback()
            raise DuplicateJurisdictionError(name, jurisdiction_type.value)
        except TaxLedgerError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating jurisdiction {name}: {str(e)}")
            raise

        logger.info(
            f"Created {jurisdiction_type.value} jurisdiction {name} (id={jurisdiction.id})"
        )
        return jurisdiction

    def list_jurisdictions(
        self, jurisdiction_type: Optional[JurisdictionType] = None
    ) -> List[Jurisdiction]:
        query = self.db.query(Jurisdiction)
        if jurisdiction_type is not None:
            query = query.filter(
                Jurisdiction.jurisdiction_type == JurisdictionType(jurisdiction_type).value
            )
        return query.order_by(Jurisdiction.id).all()

    def get_jurisdiction(self, jurisdiction_id: int) -> Jurisdiction:
        return self.timeline.get_jurisdiction(jurisdiction_id)
