# backend/modules/orders/exceptions/order_exceptions.py

from dataclasses import dataclass
from typing import Any, Dict

from fastapi import status

from core.exceptions import TaxLedgerError


@dataclass
class ImportRowError:
    """Why one CSV row was not imported"""
    row: int  # 1-based line number in the file, header is row 1
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "reason": self.reason}


class OrderNotFoundError(TaxLedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", details={"order_id": order_id})


class DuplicateImportError(TaxLedgerError):
    """Raised when byte-identical content was already imported"""

    status_code = status.HTTP_409_CONFLICT
    default_error_code = "DUPLICATE_IMPORT"

    def __init__(self, file_hash: str, existing_import_id: str, filename: str = None):
        self.existing_import_id = existing_import_id
        super().__init__(
            f"This file was already imported as {existing_import_id}",
            details={
                "file_hash": file_hash,
                "existing_import_id": existing_import_id,
                "filename": filename,
            },
        )


class ImportNotFoundError(TaxLedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_error_code = "IMPORT_NOT_FOUND"

    def __init__(self, import_id: str):
        super().__init__(f"Import {import_id} not found", details={"import_id": import_id})


class InvalidImportFileError(TaxLedgerError):
    """Raised when the upload cannot be read as a CSV batch at all"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_error_code = "INVALID_IMPORT_FILE"

    def __init__(self, reason: str, filename: str = None):
        super().__init__(
            f"Cannot import {filename or 'file'}: {reason}",
            details={"filename": filename},
        )
