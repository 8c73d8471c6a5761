# backend/modules/tax/tests/test_mutation_ledger.py

import pytest
from datetime import date
from decimal import Decimal

from core.exceptions import ImmutableRecordError
from modules.tax.enums.tax_enums import MutationAction, MutationStatus
from modules.tax.models import TaxRateMutation
from modules.tax.services import MutationLedgerService, RateTimelineService


@pytest.fixture
def kings_history(db_session, nyc):
    """initial 4% -> 4.5% (2024-06-01) -> 5% (2025-01-01), then revert of the 5% change"""
    kings = nyc["kings_county"]
    service = RateTimelineService(db_session)
    first = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
    second = service.set_rate(kings.id, Decimal("0.05"), date(2025, 1, 1))
    revert = service.revert_last_mutation(kings.id)
    return {
        "kings": kings,
        "first_id": first.id,
        "second_id": second.id,
        "revert_id": revert.id,
    }


class TestMutationLedger:
    def test_initial_rates_are_ledgered(self, db_session, nyc):
        entries = MutationLedgerService(db_session).entries()

        assert len(entries) == 4
        assert all(e.mutation.action == MutationAction.SET.value for e in entries)
        assert all(e.status == MutationStatus.ACTIVE for e in entries)
        assert {e.mutation.note for e in entries} == {"initial rate"}

    def test_statuses_are_derived(self, db_session, kings_history):
        entries = MutationLedgerService(db_session).entries(kings_history["kings"].id)
        by_id = {e.mutation.id: e for e in entries}

        assert [e.mutation.id for e in entries][0] == kings_history["revert_id"]
        assert by_id[kings_history["revert_id"]].status == MutationStatus.APPLIED
        assert by_id[kings_history["second_id"]].status == MutationStatus.REVERTED
        assert by_id[kings_history["second_id"]].reverted_by_id == kings_history["revert_id"]
        assert by_id[kings_history["first_id"]].status == MutationStatus.ACTIVE
        assert all(e.jurisdiction_name == "Kings County" for e in entries)

    def test_latest_active_skips_reverted(self, db_session, kings_history):
        ledger = MutationLedgerService(db_session)

        assert ledger.latest_active(kings_history["kings"].id).id == kings_history["first_id"]
        assert ledger.is_reverted(kings_history["second_id"])
        assert not ledger.is_reverted(kings_history["first_id"])

    def test_limit_and_filter(self, db_session, kings_history):
        ledger = MutationLedgerService(db_session)

        assert len(ledger.entries(limit=2)) == 2
        assert len(ledger.entries(kings_history["kings"].id)) == 4

    def test_describe(self, db_session, kings_history):
        entry = db_session.get(TaxRateMutation, kings_history["first_id"])

        text = MutationLedgerService.describe(entry)

        assert "set" in text
        assert "0.045" in text
        assert "2024-06-01" in text


class TestLedgerImmutability:
    def test_update_rejected(self, db_session, kings_history):
        entry = db_session.get(TaxRateMutation, kings_history["first_id"])
        entry.note = "rewritten history"

        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        assert db_session.get(TaxRateMutation, kings_history["first_id"]).note is None

    def test_delete_rejected(self, db_session, kings_history):
        entry = db_session.get(TaxRateMutation, kings_history["revert_id"])
        db_session.delete(entry)

        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        assert db_session.get(TaxRateMutation, kings_history["revert_id"]) is not None

    def test_revert_never_touches_the_reverted_entry(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        change = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1), note="raise")
        snapshot = (change.id, change.rate_id, change.previous_rate_id, change.old_rate, change.new_rate)

        service.revert_last_mutation(kings.id)
        db_session.expire_all()
        reloaded = db_session.get(TaxRateMutation, snapshot[0])

        assert (
            reloaded.id, reloaded.rate_id, reloaded.previous_rate_id,
            reloaded.old_rate, reloaded.new_rate,
        ) == snapshot
        assert reloaded.note == "raise"
