# backend/modules/tax/services/mutation_ledger_service.py

"""
Append-only audit trail of rate changes.

Entries are never updated. Whether a ``set`` entry is active, superseded or
reverted is derived from the entries that follow it.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, aliased

from ..enums.tax_enums import MutationAction, MutationStatus
from ..models import TaxRate, TaxRateMutation

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    mutation: TaxRateMutation
    status: MutationStatus
    jurisdiction_name: Optional[str] = None
    reverted_by_id: Optional[int] = None


class MutationLedgerService:
    def __init__(self, db: Session):
        self.db = db

    def record_set(
        self,
        jurisdiction_id: int,
        new_interval: TaxRate,
        previous_interval: Optional[TaxRate],
        effective_date: date,
        note: Optional[str] = None,
    ) -> TaxRateMutation:
        entry = TaxRateMutation(
            jurisdiction_id=jurisdiction_id,
            action=MutationAction.SET.value,
            rate_id=new_interval.id,
            previous_rate_id=previous_interval.id if previous_interval else None,
            old_rate=previous_interval.rate if previous_interval else None,
            new_rate=new_interval.rate,
            effective_date=effective_date,
            note=note,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_revert(
        self,
        reverted: TaxRateMutation,
        restored_interval: Optional[TaxRate],
        note: Optional[str] = None,
    ) -> TaxRateMutation:
        # old/new are swapped relative to the entry being undone
        entry = TaxRateMutation(
            jurisdiction_id=reverted.jurisdiction_id,
            action=MutationAction.REVERT.value,
            rate_id=None,
            previous_rate_id=restored_interval.id if restored_interval else None,
            old_rate=reverted.new_rate,
            new_rate=reverted.old_rate,
            effective_date=reverted.effective_date,
            reverts_mutation_id=reverted.id,
            note=note,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def is_reverted(self, mutation_id: int) -> bool:
        return (
            self.db.query(TaxRateMutation.id)
            .filter(TaxRateMutation.reverts_mutation_id == mutation_id)
            .first()
            is not None
        )

    def latest_active(self, jurisdiction_id: int) -> Optional[TaxRateMutation]:
        """Most recent ``set`` for the jurisdiction that has not been reverted."""
        revert = aliased(TaxRateMutation)
        return (
            self.db.query(TaxRateMutation)
            .outerjoin(revert, revert.reverts_mutation_id == TaxRateMutation.id)
            .filter(
                TaxRateMutation.jurisdiction_id == jurisdiction_id,
                TaxRateMutation.action == MutationAction.SET.value,
                revert.id.is_(None),
            )
            .order_by(TaxRateMutation.id.desc())
            .first()
        )

    def entries(
        self, jurisdiction_id: Optional[int] = None, limit: int = 100
    ) -> List[LedgerEntry]:
        """Newest first, each with its derived status."""
        query = self.db.query(TaxRateMutation)
        if jurisdiction_id is not None:
            query = query.filter(TaxRateMutation.jurisdiction_id == jurisdiction_id)
        mutations = query.order_by(TaxRateMutation.id.desc()).limit(limit).all()
        if not mutations:
            return []

        jurisdiction_ids = {m.jurisdiction_id for m in mutations}
        reverted_by: Dict[int, int] = {
            row.reverts_mutation_id: row.id
            for row in self.db.query(
                TaxRateMutation.id, TaxRateMutation.reverts_mutation_id
            ).filter(
                TaxRateMutation.jurisdiction_id.in_(jurisdiction_ids),
                TaxRateMutation.reverts_mutation_id.isnot(None),
            )
        }
        active_ids = {}
        for jid in jurisdiction_ids:
            active = self.latest_active(jid)
            if active is not None:
                active_ids[jid] = active.id

        result = []
        for mutation in mutations:
            if mutation.action == MutationAction.REVERT.value:
                status = MutationStatus.APPLIED
            elif mutation.id in reverted_by:
                status = MutationStatus.REVERTED
            elif active_ids.get(mutation.jurisdiction_id) == mutation.id:
                status = MutationStatus.ACTIVE
            else:
                status = MutationStatus.SUPERSEDED
            result.append(
                LedgerEntry(
                    mutation=mutation,
                    status=status,
                    jurisdiction_name=mutation.jurisdiction.name if mutation.jurisdiction else None,
                    reverted_by_id=reverted_by.get(mutation.id),
                )
            )
        return result

    @staticmethod
    def describe(mutation: TaxRateMutation) -> str:
        return (
            f"jurisdiction={mutation.jurisdiction_id} {mutation.action} "
            f"{mutation.old_rate} -> {mutation.new_rate} effective {mutation.effective_date}"
        )
