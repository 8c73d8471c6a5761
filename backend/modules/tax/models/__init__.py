# backend/modules/tax/models/__init__.py

from .jurisdiction_models import Jurisdiction, TaxRate, TaxRateMutation

__all__ = [
    "Jurisdiction",
    "TaxRate",
    "TaxRateMutation",
]
