# backend/modules/tax/tests/test_rate_timeline.py

import pytest
from datetime import date, datetime, timezone, timedelta
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from modules.tax.exceptions.tax_exceptions import (
    InvalidInputError,
    JurisdictionNotFoundError,
    MutationNotFoundError,
    NoEffectiveRateError,
    RateConflictError,
    RevertNotAllowedError,
)
from modules.tax.models import TaxRate, TaxRateMutation
from modules.tax.enums.tax_enums import JurisdictionType
from modules.tax.services import RateTimelineService

from .factories import NY_STATE, add_jurisdiction


class TestSetRate:
    """Closing the head and opening a new interval"""

    def test_kings_county_rate_change(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)

        service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))

        old, new = sorted(service.timeline(kings.id), key=lambda r: r.valid_from)
        assert old.rate == Decimal("0.04")
        assert old.valid_from == date(2020, 1, 1)
        assert old.valid_to == date(2024, 6, 1)
        assert new.rate == Decimal("0.045")
        assert new.valid_from == date(2024, 6, 1)
        assert new.valid_to is None

        assert service.rate_at(kings.id, date(2024, 5, 31)) == Decimal("0.04")
        assert service.rate_at(kings.id, date(2024, 6, 1)) == Decimal("0.045")
        assert service.verify_timeline(kings.id) == []

    def test_ledger_entry_records_old_and_new(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        previous_head = service.head(kings.id)

        entry = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1), note="Pub 718")

        assert entry.action == "set"
        assert entry.old_rate == Decimal("0.04")
        assert entry.new_rate == Decimal("0.045")
        assert entry.effective_date == date(2024, 6, 1)
        assert entry.previous_rate_id == previous_head.id
        assert entry.rate_id == service.head(kings.id).id
        assert entry.note == "Pub 718"

    def test_rate_at_uses_utc_calendar_date(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))

        # 22:00 on May 31 in New York is already June 1 in UTC
        eastern = timezone(timedelta(hours=-4))
        instant = datetime(2024, 5, 31, 22, 0, tzinfo=eastern)
        assert service.rate_at(kings.id, instant) == Decimal("0.045")
        assert service.rate_at(kings.id, "2024-05-31T23:59:59Z") == Decimal("0.04")

    def test_no_rate_before_first_interval(self, db_session, nyc):
        service = RateTimelineService(db_session)

        with pytest.raises(NoEffectiveRateError) as exc_info:
            service.rate_at(nyc["kings_county"].id, date(2019, 12, 31))

        assert exc_info.value.status_code == 422
        assert service.find_rate_at(nyc["kings_county"].id, date(2019, 12, 31)) is None

    @pytest.mark.parametrize("effective", [date(2020, 1, 1), date(2019, 6, 1)])
    def test_effective_date_must_follow_head_start(self, db_session, nyc, effective):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        ledger_before = db_session.query(TaxRateMutation).count()

        with pytest.raises(RateConflictError):
            service.set_rate(kings.id, Decimal("0.05"), effective)

        intervals = service.timeline(kings.id)
        assert len(intervals) == 1
        assert intervals[0].valid_to is None
        assert intervals[0].rate == Decimal("0.04")
        assert db_session.query(TaxRateMutation).count() == ledger_before

    @pytest.mark.parametrize("rate", ["1", "1.5", "-0.01", "0.0000001"])
    def test_invalid_rate_rejected(self, db_session, nyc, rate):
        with pytest.raises(InvalidInputError):
            RateTimelineService(db_session).set_rate(
                nyc["kings_county"].id, Decimal(rate), date(2024, 6, 1)
            )

    def test_unknown_jurisdiction(self, db_session, nyc):
        with pytest.raises(JurisdictionNotFoundError):
            RateTimelineService(db_session).set_rate(9999, Decimal("0.04"), date(2024, 6, 1))

    def test_first_rate_for_jurisdiction_without_head(self, db_session):
        state = add_jurisdiction(db_session, "New York State", JurisdictionType.STATE, NY_STATE)
        service = RateTimelineService(db_session)

        entry = service.set_rate(state.id, Decimal("0.04"), date(2025, 3, 1))

        assert entry.old_rate is None
        assert entry.previous_rate_id is None
        assert service.rate_at(state.id, date(2025, 3, 1)) == Decimal("0.04")


class TestRevert:
    def test_revert_restores_previous_rate_everywhere(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        probes = [date(2020, 1, 1), date(2024, 5, 31), date(2024, 6, 1), date(2030, 1, 1)]
        before = {d: service.rate_at(kings.id, d) for d in probes}
        original_head_id = service.head(kings.id).id

        service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        service.revert_last_mutation(kings.id)

        assert {d: service.rate_at(kings.id, d) for d in probes} == before
        intervals = service.timeline(kings.id)
        assert len(intervals) == 1
        assert intervals[0].id == original_head_id
        assert intervals[0].valid_to is None
        assert service.verify_timeline() == []

    def test_revert_is_recorded_not_erased(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)

        change = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        change_id = change.id
        revert = service.revert_last_mutation(kings.id)

        assert revert.action == "revert"
        assert revert.reverts_mutation_id == change_id
        assert revert.old_rate == Decimal("0.045")
        assert revert.new_rate == Decimal("0.04")

        original = db_session.get(TaxRateMutation, change_id)
        assert original is not None
        assert original.new_rate == Decimal("0.045")
        assert service.ledger.is_reverted(change_id)

    def test_successive_reverts_walk_back_one_change_at_a_time(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        service.set_rate(kings.id, Decimal("0.05"), date(2025, 1, 1))

        service.revert_last_mutation(kings.id)
        assert service.rate_at(kings.id, date(2025, 6, 1)) == Decimal("0.045")

        service.revert_last_mutation(kings.id)
        assert service.rate_at(kings.id, date(2025, 6, 1)) == Decimal("0.04")

        # The initial rate itself was a ledgered change
        service.revert_last_mutation(kings.id)
        assert service.timeline(kings.id) == []

        with pytest.raises(MutationNotFoundError):
            service.revert_last_mutation(kings.id)

    def test_only_latest_mutation_can_be_reverted(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        first = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        first_id = first.id
        service.set_rate(kings.id, Decimal("0.05"), date(2025, 1, 1))

        with pytest.raises(RevertNotAllowedError) as exc_info:
            service.revert_mutation(first_id)

        assert exc_info.value.status_code == 409
        assert service.rate_at(kings.id, date(2025, 6, 1)) == Decimal("0.05")
        assert len(service.timeline(kings.id)) == 3

    def test_revert_entry_cannot_be_reverted(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        revert = service.revert_last_mutation(kings.id)

        with pytest.raises(RevertNotAllowedError):
            service.revert_mutation(revert.id)

    def test_already_reverted_mutation(self, db_session, nyc):
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        change = service.set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        change_id = change.id
        service.revert_mutation(change_id)

        with pytest.raises(RevertNotAllowedError):
            service.revert_mutation(change_id)

    def test_unknown_mutation(self, db_session, nyc):
        with pytest.raises(MutationNotFoundError):
            RateTimelineService(db_session).revert_mutation(424242)


class TestStorageConstraints:
    """Overlap protection that does not depend on the service code path"""

    def test_overlapping_interval_rejected(self, db_session, nyc):
        kings = nyc["kings_county"]
        db_session.add(TaxRate(
            jurisdiction_id=kings.id,
            rate=Decimal("0.05"),
            valid_from=date(2022, 1, 1),
            valid_to=date(2023, 1, 1),
        ))

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_second_open_head_rejected(self, db_session, nyc):
        kings = nyc["kings_county"]
        db_session.add(TaxRate(
            jurisdiction_id=kings.id,
            rate=Decimal("0.05"),
            valid_from=date(2030, 1, 1),
            valid_to=None,
        ))

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_extending_closed_interval_into_neighbour_rejected(self, db_session, nyc):
        kings = nyc["kings_county"]
        RateTimelineService(db_session).set_rate(kings.id, Decimal("0.045"), date(2024, 6, 1))
        closed = (
            db_session.query(TaxRate)
            .filter(TaxRate.jurisdiction_id == kings.id, TaxRate.valid_to.isnot(None))
            .one()
        )
        closed.valid_to = date(2024, 7, 1)

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_adjacent_intervals_are_not_overlapping(self, db_session, nyc):
        kings = nyc["kings_county"]
        db_session.add(TaxRate(
            jurisdiction_id=kings.id,
            rate=Decimal("0.03"),
            valid_from=date(2019, 1, 1),
            valid_to=date(2020, 1, 1),
        ))
        db_session.commit()

        assert RateTimelineService(db_session).verify_timeline(kings.id) == []

    def test_losing_writer_gets_conflict(self, db_session, nyc, monkeypatch):
        """A writer that did not see the current head is stopped by the store."""
        kings = nyc["kings_county"]
        service = RateTimelineService(db_session)
        monkeypatch.setattr(RateTimelineService, "_current_head", lambda self, jid: None)

        with pytest.raises(RateConflictError):
            service.set_rate(kings.id, Decimal("0.05"), date(2025, 1, 1))

        monkeypatch.undo()
        assert service.verify_timeline() == []
        assert len(service.timeline(kings.id)) == 1
        assert service.rate_at(kings.id, date(2025, 6, 1)) == Decimal("0.04")


class TestRateTable:
    def test_rate_table_groups_intervals(self, db_session, nyc):
        service = RateTimelineService(db_session)
        service.set_rate(nyc["kings_county"].id, Decimal("0.045"), date(2024, 6, 1))

        table = dict((j.name, intervals) for j, intervals in service.rate_table())

        assert set(table) == {"New York State", "New York County", "Kings County", "New York City"}
        assert [i.rate for i in table["Kings County"]] == [Decimal("0.045"), Decimal("0.04")]
        assert len(table["New York State"]) == 1
