# backend/modules/tax/exceptions/tax_exceptions.py

from datetime import date
from typing import Optional

from fastapi import status

from core.exceptions import TaxLedgerError


class InvalidInputError(TaxLedgerError):
    """Raised when a point, amount, rate or date is malformed"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_error_code = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"{field}: {reason}", details={"field": field})


class OutOfCoverageError(TaxLedgerError):
    """Raised when no state-level jurisdiction contains the point"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_error_code = "OUT_OF_COVERAGE"

    def __init__(self, lat, lon):
        super().__init__(
            f"No taxing jurisdiction covers point ({lat}, {lon})",
            details={"lat": str(lat), "lon": str(lon)},
        )


class NoEffectiveRateError(TaxLedgerError):
    """Raised when a jurisdiction has no rate interval covering a date"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_error_code = "NO_EFFECTIVE_RATE"

    def __init__(self, jurisdiction_id: int, on: date, name: Optional[str] = None):
        self.jurisdiction_id = jurisdiction_id
        self.on = on
        label = name or f"Jurisdiction {jurisdiction_id}"
        super().__init__(
            f"{label} has no effective tax rate on {on.isoformat()}",
            details={"jurisdiction_id": jurisdiction_id, "date": on.isoformat()},
        )


class JurisdictionNotFoundError(TaxLedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_error_code = "JURISDICTION_NOT_FOUND"

    def __init__(self, jurisdiction_id):
        super().__init__(
            f"Jurisdiction {jurisdiction_id} not found",
            details={"jurisdiction_id": jurisdiction_id},
        )


class DuplicateJurisdictionError(TaxLedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_error_code = "JURISDICTION_EXISTS"

    def __init__(self, name: str, jurisdiction_type: str):
        super().__init__(
            f"Jurisdiction '{name}' ({jurisdiction_type}) already exists",
            details={"name": name, "type": jurisdiction_type},
        )


class InvalidGeometryError(TaxLedgerError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_error_code = "INVALID_GEOMETRY"

    def __init__(self, reason: str):
        super().__init__(f"Invalid jurisdiction geometry: {reason}")


class RateConflictError(TaxLedgerError):
    """Raised when a rate change would overlap the existing timeline"""

    status_code = status.HTTP_409_CONFLICT
    default_error_code = "RATE_CONFLICT"

    def __init__(self, jurisdiction_id: int, message: str, **details):
        super().__init__(
            message, details={"jurisdiction_id": jurisdiction_id, **details}
        )


class MutationNotFoundError(TaxLedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_error_code = "MUTATION_NOT_FOUND"

    def __init__(self, message: str, **details):
        super().__init__(message, details=details)


class RevertNotAllowedError(TaxLedgerError):
    """Raised when a revert targets anything but the most recent change"""

    status_code = status.HTTP_409_CONFLICT
    default_error_code = "REVERT_NOT_ALLOWED"

    def __init__(self, mutation_id: int, reason: str):
        super().__init__(
            f"Rate mutation {mutation_id} cannot be reverted: {reason}",
            details={"mutation_id": mutation_id},
        )
