# backend/modules/tax/enums/tax_enums.py

from enum import Enum


class JurisdictionType(str, Enum):
    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    SPECIAL = "special"

    @property
    def is_single_valued(self) -> bool:
        """A point lies in at most one state, county and city."""
        return self is not JurisdictionType.SPECIAL


class MutationAction(str, Enum):
    SET = "set"
    REVERT = "revert"


class MutationStatus(str, Enum):
    ACTIVE = "active"  # Most recent un-reverted change, eligible for revert
    SUPERSEDED = "superseded"
    REVERTED = "reverted"
    APPLIED = "applied"  # Revert entries themselves
