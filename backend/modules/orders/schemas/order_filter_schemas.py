"""
Typed order filters.

Each filter is one member of a tagged union keyed on ``kind``. Unknown kinds
and unexpected keys are rejected at validation time.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Annotated, List, Literal, Optional, Union
from datetime import date
from decimal import Decimal

from ..enums.order_enums import ComparisonOperator, NumericField, OrderSource


class _Filter(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DateRangeFilter(_Filter):
    """Orders whose timestamp falls on start..end (both inclusive, UTC days)"""

    kind: Literal["date_range"]
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start is None and self.end is None:
            raise ValueError("date_range needs start, end or both")
        if self.start and self.end and self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class NumericFilter(_Filter):
    kind: Literal["numeric"]
    field: NumericField
    op: ComparisonOperator
    value: Decimal
    upper: Optional[Decimal] = None

    @model_validator(mode="after")
    def check_upper(self):
        if self.op is ComparisonOperator.BETWEEN:
            if self.upper is None:
                raise ValueError("'between' requires upper")
            if self.upper < self.value:
                raise ValueError("upper must not be below value")
        elif self.upper is not None:
            raise ValueError("upper is only allowed with 'between'")
        return self


class TextFilter(_Filter):
    """Case-insensitive match on applied jurisdiction names or an order id prefix"""

    kind: Literal["text"]
    value: str = Field(..., min_length=1, max_length=200)


class SourceFilter(_Filter):
    kind: Literal["source"]
    value: OrderSource


class ImportFilter(_Filter):
    kind: Literal["import"]
    import_id: str = Field(..., min_length=1, max_length=36)


OrderFilter = Annotated[
    Union[DateRangeFilter, NumericFilter, TextFilter, SourceFilter, ImportFilter],
    Field(discriminator="kind"),
]


class OrderQuery(_Filter):
    filters: List[OrderFilter] = []
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
