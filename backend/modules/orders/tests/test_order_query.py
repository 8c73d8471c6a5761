# backend/modules/orders/tests/test_order_query.py

import pytest
from datetime import date
from decimal import Decimal
from pydantic import ValidationError

from modules.orders.enums.order_enums import ComparisonOperator, NumericField, OrderSource
from modules.orders.schemas.order_filter_schemas import (
    DateRangeFilter,
    NumericFilter,
    OrderQuery,
    SourceFilter,
    TextFilter,
)
from modules.orders.services.import_service import ImportService
from modules.orders.services.order_query_service import OrderQueryService
from modules.tax.enums.tax_enums import JurisdictionType
from modules.tax.tests.factories import BROOKLYN_POINT, add_jurisdiction

from .factories import csv_bytes, manual_order


@pytest.fixture
def orders(db_session, nyc):
    manual_order(db_session, subtotal="100.00", timestamp="2025-06-01T00:00:00Z")
    manual_order(db_session, subtotal="50.00", timestamp="2025-06-02T23:59:59Z")
    manual_order(db_session, point=BROOKLYN_POINT, subtotal="10.00", timestamp="2025-06-03T12:00:00Z")
    ImportService(db_session).import_batch(
        csv_bytes([
            ("40.7128", "-74.0060", "5.00", "2025-06-04T08:00:00Z"),
            ("40.7128", "-74.0060", "7.50", "2025-06-05T08:00:00Z"),
        ]),
        "june.csv",
    )


def search(db_session, *filters, page=1, limit=20):
    return OrderQueryService(db_session).search(
        OrderQuery(filters=list(filters), page=page, limit=limit)
    )


class TestOrderQuery:
    def test_no_filters_newest_first(self, db_session, orders):
        result = search(db_session)

        assert result["total"] == 5
        assert [o.subtotal for o in result["data"]] == [
            Decimal("7.50"), Decimal("5.00"), Decimal("10.00"), Decimal("50.00"), Decimal("100.00"),
        ]

    def test_date_range_end_day_inclusive(self, db_session, orders):
        result = search(
            db_session,
            DateRangeFilter(kind="date_range", start=date(2025, 6, 1), end=date(2025, 6, 2)),
        )

        assert result["total"] == 2

    def test_open_ended_date_range(self, db_session, orders):
        result = search(db_session, DateRangeFilter(kind="date_range", start=date(2025, 6, 3)))

        assert result["total"] == 3

    @pytest.mark.parametrize(
        "op, value, upper, expected",
        [
            (ComparisonOperator.EQ, "50.00", None, 1),
            (ComparisonOperator.GT, "10.00", None, 2),
            (ComparisonOperator.GTE, "10.00", None, 3),
            (ComparisonOperator.LT, "10.00", None, 2),
            (ComparisonOperator.LTE, "10.00", None, 3),
            (ComparisonOperator.BETWEEN, "5.00", "50.00", 4),
        ],
    )
    def test_numeric_operators(self, db_session, orders, op, value, upper, expected):
        f = NumericFilter(
            kind="numeric",
            field=NumericField.SUBTOTAL,
            op=op,
            value=Decimal(value),
            upper=Decimal(upper) if upper else None,
        )

        assert search(db_session, f)["total"] == expected

    def test_text_matches_jurisdiction_name(self, db_session, orders):
        kings = search(db_session, TextFilter(kind="text", value="kings"))
        manhattan = search(db_session, TextFilter(kind="text", value="New York County"))

        assert kings["total"] == 1
        assert manhattan["total"] == 4

    def test_text_matches_order_id_prefix(self, db_session, orders):
        order = search(db_session)["data"][0]

        result = search(db_session, TextFilter(kind="text", value=order.id[:8]))

        assert order.id in [o.id for o in result["data"]]

    @pytest.mark.parametrize("term", ["rate", "name", "type", "county\"", "0.04", "{"])
    def test_text_does_not_match_keys_or_rates(self, db_session, orders, term):
        assert search(db_session, TextFilter(kind="text", value=term))["total"] == 0

    def test_text_matches_non_ascii_names(self, db_session, nyc):
        add_jurisdiction(
            db_session, "Café District", JurisdictionType.SPECIAL, (-74.1, 40.6, -73.9, 40.8), "0.001"
        )
        manual_order(db_session)

        assert search(db_session, TextFilter(kind="text", value="CAFÉ"))["total"] == 1
        assert search(db_session, TextFilter(kind="text", value="café district"))["total"] == 1

    def test_like_wildcards_are_literal(self, db_session, orders):
        assert search(db_session, TextFilter(kind="text", value="%"))["total"] == 0

    def test_source_filter(self, db_session, orders):
        manual = search(db_session, SourceFilter(kind="source", value=OrderSource.MANUAL))
        imported = search(db_session, SourceFilter(kind="source", value=OrderSource.IMPORT))

        assert manual["total"] == 3
        assert imported["total"] == 2
        assert all(o.source is OrderSource.IMPORT for o in imported["data"])

    def test_filters_combine_with_and(self, db_session, orders):
        result = search(
            db_session,
            SourceFilter(kind="source", value=OrderSource.MANUAL),
            NumericFilter(
                kind="numeric", field=NumericField.TOTAL_AMOUNT, op=ComparisonOperator.GT,
                value=Decimal("20"),
            ),
        )

        assert result["total"] == 2

    def test_pagination(self, db_session, orders):
        first = search(db_session, page=1, limit=2)
        last = search(db_session, page=3, limit=2)
        beyond = search(db_session, page=4, limit=2)

        assert first["total_pages"] == 3
        assert len(first["data"]) == 2
        assert len(last["data"]) == 1
        assert beyond["data"] == []
        assert beyond["total"] == 5


class TestFilterValidation:
    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            OrderQuery.model_validate({"filters": [{"kind": "status", "value": "paid"}]})

    def test_extra_keys_rejected(self):
        with pytest.raises(ValidationError):
            OrderQuery.model_validate(
                {"filters": [{"kind": "text", "value": "kings", "field": "name"}]}
            )

    def test_between_requires_upper(self):
        with pytest.raises(ValidationError):
            OrderQuery.model_validate({
                "filters": [{"kind": "numeric", "field": "subtotal", "op": "between", "value": "1"}]
            })

    def test_upper_only_with_between(self):
        with pytest.raises(ValidationError):
            OrderQuery.model_validate({
                "filters": [
                    {"kind": "numeric", "field": "subtotal", "op": "gt", "value": "1", "upper": "5"}
                ]
            })

    def test_reversed_date_range_rejected(self):
        with pytest.raises(ValidationError):
            OrderQuery.model_validate({
                "filters": [{"kind": "date_range", "start": "2025-06-02", "end": "2025-06-01"}]
            })

    def test_limit_bounds(self):
        with pytest.raises(ValidationError):
            OrderQuery(limit=101)
        with pytest.raises(ValidationError):
            OrderQuery(page=0)

    def test_discriminated_parse(self):
        query = OrderQuery.model_validate({
            "filters": [
                {"kind": "source", "value": "import"},
                {"kind": "import", "import_id": "abc"},
            ]
        })

        assert isinstance(query.filters[0], SourceFilter)
        assert query.filters[1].import_id == "abc"
