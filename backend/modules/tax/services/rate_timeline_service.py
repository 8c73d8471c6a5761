# backend/modules/tax/services/rate_timeline_service.py

"""
Temporal rate store (SCD Type 2).

Each jurisdiction owns a sequence of ``[valid_from, valid_to)`` intervals
with at most one open head. Intervals are only written here: ``set_rate``
closes the head and opens a new one, ``revert_*`` deletes the newest
interval and reopens its predecessor. Both append to the mutation ledger in
the same transaction.

The storage layer rejects overlapping intervals and a second head, so two
writers racing on one jurisdiction cannot both commit; the loser gets a
``RateConflictError`` and may retry.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import TaxLedgerError

from ..exceptions.tax_exceptions import (
    InvalidInputError,
    JurisdictionNotFoundError,
    MutationNotFoundError,
    NoEffectiveRateError,
    RateConflictError,
    RevertNotAllowedError,
)
from ..enums.tax_enums import MutationAction
from ..models import Jurisdiction, TaxRate, TaxRateMutation
from ..utils.input_validation import as_rate_date, validate_rate
from ..utils.precision import to_decimal
from .mutation_ledger_service import MutationLedgerService

logger = logging.getLogger(__name__)


class RateTimelineService:
    """Read and mutate per-jurisdiction rate timelines"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = MutationLedgerService(db)

    # ─── Reads ──────────────────────────────────────────────────

    def get_jurisdiction(self, jurisdiction_id: int) -> Jurisdiction:
        jurisdiction = self.db.get(Jurisdiction, jurisdiction_id)
        if jurisdiction is None:
            raise JurisdictionNotFoundError(jurisdiction_id)
        return jurisdiction

    def find_rate_at(
        self, jurisdiction_id: int, instant: Union[date, datetime, str]
    ) -> Optional[TaxRate]:
        """The interval covering ``instant`` (UTC calendar date), or None."""
        on = as_rate_date(instant)
        return (
            self.db.query(TaxRate)
            .filter(
                TaxRate.jurisdiction_id == jurisdiction_id,
                TaxRate.valid_from <= on,
                or_(TaxRate.valid_to.is_(None), TaxRate.valid_to > on),
            )
            .first()
        )

    def rate_at(self, jurisdiction_id: int, instant: Union[date, datetime, str]) -> Decimal:
        jurisdiction = self.get_jurisdiction(jurisdiction_id)
        interval = self.find_rate_at(jurisdiction_id, instant)
        if interval is None:
            raise NoEffectiveRateError(
                jurisdiction_id, as_rate_date(instant), name=jurisdiction.name
            )
        return Decimal(interval.rate)

    def head(self, jurisdiction_id: int) -> Optional[TaxRate]:
        return (
            self.db.query(TaxRate)
            .filter(TaxRate.jurisdiction_id == jurisdiction_id, TaxRate.valid_to.is_(None))
            .first()
        )

    def _current_head(self, jurisdiction_id: int) -> Optional[TaxRate]:
        # Row lock on PostgreSQL; a no-op on SQLite, where the storage
        # constraints alone reject the second writer
        return (
            self.db.query(TaxRate)
            .filter(TaxRate.jurisdiction_id == jurisdiction_id, TaxRate.valid_to.is_(None))
            .with_for_update()
            .first()
        )

    def timeline(self, jurisdiction_id: int) -> List[TaxRate]:
        """All intervals, newest first"""
        self.get_jurisdiction(jurisdiction_id)
        return (
            self.db.query(TaxRate)
            .filter(TaxRate.jurisdiction_id == jurisdiction_id)
            .order_by(TaxRate.valid_from.desc())
            .all()
        )

    def rate_table(self) -> List[Tuple[Jurisdiction, List[TaxRate]]]:
        jurisdictions = self.db.query(Jurisdiction).order_by(Jurisdiction.id).all()
        intervals: Dict[int, List[TaxRate]] = {j.id: [] for j in jurisdictions}
        for interval in (
            self.db.query(TaxRate)
            .order_by(TaxRate.jurisdiction_id, TaxRate.valid_from.desc())
            .all()
        ):
            intervals.setdefault(interval.jurisdiction_id, []).append(interval)
        return [(j, intervals[j.id]) for j in jurisdictions]

    def verify_timeline(self, jurisdiction_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Check the partition invariants and return every violation found.

        An empty list means: no interval ends before it starts, no two
        intervals of one jurisdiction overlap and only the latest may be open.
        """
        query = self.db.query(TaxRate)
        if jurisdiction_id is not None:
            query = query.filter(TaxRate.jurisdiction_id == jurisdiction_id)
        rows = query.order_by(TaxRate.jurisdiction_id, TaxRate.valid_from).all()

        violations = []
        previous: Optional[TaxRate] = None
        for interval in rows:
            if interval.valid_to is not None and interval.valid_to <= interval.valid_from:
                violations.append({
                    "jurisdiction_id": interval.jurisdiction_id,
                    "rate_id": interval.id,
                    "problem": "interval ends on or before its start",
                })
            if previous is not None and previous.jurisdiction_id == interval.jurisdiction_id:
                if previous.valid_to is None:
                    violations.append({
                        "jurisdiction_id": interval.jurisdiction_id,
                        "rate_id": previous.id,
                        "problem": "open interval is not the latest",
                    })
                elif previous.valid_to > interval.valid_from:
                    violations.append({
                        "jurisdiction_id": interval.jurisdiction_id,
                        "rate_id": interval.id,
                        "problem": f"overlaps interval {previous.id}",
                    })
            previous = interval
        return violations

    # ─── Mutations ──────────────────────────────────────────────

    def set_rate(
        self,
        jurisdiction_id: int,
        new_rate: Decimal,
        effective_date: Union[date, str],
        note: Optional[str] = None,
        commit: bool = True,
    ) -> TaxRateMutation:
        """
        Close the current head at ``effective_date`` and open a new one.

        ``new_rate`` is a fraction (0.08875 for 8.875%). Fails with
        ``RateConflictError`` unless ``effective_date`` is strictly after the
        head's ``valid_from``. With ``commit=False`` the caller owns the
        transaction.
        """
        effective = as_rate_date(effective_date)
        try:
            rate = validate_rate(to_decimal(new_rate))
        except (ValueError, TypeError):
            raise InvalidInputError("new_rate", "must be a number")

        try:
            jurisdiction = self.get_jurisdiction(jurisdiction_id)
            head = self._current_head(jurisdiction_id)

            if head is not None and effective <= head.valid_from:
                raise RateConflictError(
                    jurisdiction_id,
                    f"Effective date {effective} must be after the current rate's "
                    f"start date {head.valid_from}",
                    effective_date=effective.isoformat(),
                    head_valid_from=head.valid_from.isoformat(),
                )
            if head is None:
                self._check_after_closed_intervals(jurisdiction_id, effective)

            if head is not None:
                head.valid_to = effective
                # Close before inserting so the open-head index never sees two
                self.db.flush()

            interval = TaxRate(
                jurisdiction_id=jurisdiction_id,
                rate=rate,
                valid_from=effective,
                valid_to=None,
            )
            self.db.add(interval)
            self.db.flush()

            entry = self.ledger.record_set(jurisdiction_id, interval, head, effective, note)

            if commit:
                self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(
                f"Rate conflict on jurisdiction {jurisdiction_id} at {effective}: {e.orig}"
            )
            raise RateConflictError(
                jurisdiction_id,
                "Rate change conflicts with an existing interval; reload and retry",
                effective_date=effective.isoformat(),
            )
        except TaxLedgerError as e:
            self.db.rollback()
            logger.warning(f"Rate change rejected for jurisdiction {jurisdiction_id}: {e.message}")
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error setting rate for jurisdiction {jurisdiction_id}: {str(e)}")
            raise

        logger.info(
            f"Rate set for {jurisdiction.name} ({jurisdiction_id}): "
            f"{entry.old_rate} -> {entry.new_rate} effective {effective}"
        )
        return entry

    def _check_after_closed_intervals(self, jurisdiction_id: int, effective: date):
        latest = (
            self.db.query(TaxRate)
            .filter(TaxRate.jurisdiction_id == jurisdiction_id)
            .order_by(TaxRate.valid_from.desc())
            .first()
        )
        if latest is not None and latest.valid_to is not None and effective < latest.valid_to:
            raise RateConflictError(
                jurisdiction_id,
                f"Effective date {effective} falls inside a closed interval ending "
                f"{latest.valid_to}",
                effective_date=effective.isoformat(),
            )

    def revert_last_mutation(self, jurisdiction_id: int) -> TaxRateMutation:
        """Undo the most recent un-reverted rate change for a jurisdiction."""
        self.get_jurisdiction(jurisdiction_id)
        mutation = self.ledger.latest_active(jurisdiction_id)
        if mutation is None:
            logger.warning(f"Nothing to revert for jurisdiction {jurisdiction_id}")
            raise MutationNotFoundError(
                f"Jurisdiction {jurisdiction_id} has no rate change to revert",
                jurisdiction_id=jurisdiction_id,
            )
        return self._revert(mutation)

    def revert_mutation(self, mutation_id: int) -> TaxRateMutation:
        """Undo a specific ledger entry, which must be its jurisdiction's latest change."""
        mutation = self.db.get(TaxRateMutation, mutation_id)
        if mutation is None:
            raise MutationNotFoundError(
                f"Rate mutation {mutation_id} not found", mutation_id=mutation_id
            )

        reason = None
        if mutation.action == MutationAction.REVERT.value:
            reason = "revert entries cannot themselves be reverted"
        elif self.ledger.is_reverted(mutation_id):
            reason = "it has already been reverted"
        else:
            latest = self.ledger.latest_active(mutation.jurisdiction_id)
            if latest is None or latest.id != mutation.id:
                reason = "only the most recent rate change can be reverted"

        if reason is not None:
            logger.warning(f"Revert of mutation {mutation_id} rejected: {reason}")
            raise RevertNotAllowedError(mutation_id, reason)

        return self._revert(mutation)

    def _revert(self, mutation: TaxRateMutation) -> TaxRateMutation:
        mutation_id = mutation.id
        jurisdiction_id = mutation.jurisdiction_id
        try:
            head = self._current_head(jurisdiction_id)
            if head is None or head.id != mutation.rate_id:
                raise RevertNotAllowedError(
                    mutation_id, "its rate interval is no longer the current head"
                )

            previous = None
            if mutation.previous_rate_id is not None:
                previous = self.db.get(TaxRate, mutation.previous_rate_id)
                if previous is None or previous.valid_to != head.valid_from:
                    raise RevertNotAllowedError(
                        mutation_id, "the interval it replaced no longer adjoins it"
                    )

            self.db.delete(head)
            # Delete before reopening so the open-head index never sees two
            self.db.flush()

            if previous is not None:
                previous.valid_to = None
                self.db.flush()

            entry = self.ledger.record_revert(mutation, previous)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Revert of mutation {mutation_id} conflicted: {e.orig}")
            raise RateConflictError(
                jurisdiction_id,
                "Revert conflicts with a concurrent rate change; reload and retry",
                mutation_id=mutation_id,
            )
        except TaxLedgerError as e:
            self.db.rollback()
            logger.warning(f"Revert of mutation {mutation_id} rejected: {e.message}")
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error reverting mutation {mutation_id}: {str(e)}")
            raise

        logger.info(
            f"Reverted rate mutation {mutation_id} for jurisdiction {jurisdiction_id}: "
            f"{entry.old_rate} -> {entry.new_rate}"
        )
        return entry
