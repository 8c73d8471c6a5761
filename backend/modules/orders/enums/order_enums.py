from enum import Enum


class OrderSource(str, Enum):
    MANUAL = "manual"  # import_id IS NULL
    IMPORT = "import"


class NumericField(str, Enum):
    COMPOSITE_TAX_RATE = "composite_tax_rate"
    SUBTOTAL = "subtotal"
    TAX_AMOUNT = "tax_amount"
    TOTAL_AMOUNT = "total_amount"


class ComparisonOperator(str, Enum):
    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
