# backend/modules/tax/tests/test_seed_jurisdictions.py

import importlib.util
from decimal import Decimal
from pathlib import Path

import pytest

from modules.tax.enums.tax_enums import JurisdictionType
from modules.tax.services import MutationLedgerService, TaxCalculationEngine
from modules.tax.services.geometry_service import load_wkt_multipolygon

SCRIPT = Path(__file__).resolve().parents[3] / "scripts" / "seed_jurisdictions.py"


@pytest.fixture(scope="module")
def seed_script():
    spec = importlib.util.spec_from_file_location("seed_jurisdictions", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestSeedJurisdictions:
    def test_seed_and_rerun(self, db_session, seed_script):
        assert seed_script.seed_jurisdictions(db_session) == (12, 0)
        assert seed_script.seed_jurisdictions(db_session) == (0, 12)
        assert len(MutationLedgerService(db_session).entries()) == 12

    def test_empire_state_building(self, db_session, seed_script):
        seed_script.seed_jurisdictions(db_session)

        result = TaxCalculationEngine(db_session).compute(
            *seed_script.CHECK_POINT, subtotal="100.00", timestamp="2025-06-01T12:00:00Z"
        )

        # 4% state + 4.5% New York County + 0.375% MCTD
        assert result.composite_tax_rate == Decimal("0.088750")
        assert result.tax_amount == Decimal("8.88")
        assert [j.name for j in result.jurisdictions_applied] == [
            "New York State", "New York County", "MCTD",
        ]

    def test_buffalo_has_no_mctd(self, db_session, seed_script):
        seed_script.seed_jurisdictions(db_session)

        result = TaxCalculationEngine(db_session).compute(
            "42.8864", "-78.8784", "100.00", "2025-06-01T12:00:00Z"
        )

        assert result.composite_tax_rate == Decimal("0.087500")
        assert result.special_rate is None

    def test_county_shapes_do_not_overlap(self, seed_script):
        counties = [
            (name, load_wkt_multipolygon(wkt_text))
            for name, jurisdiction_type, wkt_text, _ in seed_script.JURISDICTIONS
            if jurisdiction_type is JurisdictionType.COUNTY
        ]

        for i, (name, shape) in enumerate(counties):
            for other_name, other in counties[i + 1:]:
                assert shape.intersection(other).area == 0, f"{name} overlaps {other_name}"

    def test_western_nassau_gets_nassau_rate(self, db_session, seed_script):
        seed_script.seed_jurisdictions(db_session)

        # Valley Stream
        result = TaxCalculationEngine(db_session).compute(
            "40.6643", "-73.7085", "100.00", "2025-06-01T12:00:00Z"
        )

        assert result.county_rate == Decimal("0.042500")
        assert result.composite_tax_rate == Decimal("0.086250")
        assert "Nassau County" in [j.name for j in result.jurisdictions_applied]
