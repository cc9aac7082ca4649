"""Lookups over ledger records."""

from protean.utils.globals import current_domain

from dispatch.ledger.earnings import EarningsEntry, EntryStatus
from dispatch.ledger.payout import OPEN_STATUSES, Payout
from dispatch.utils.clock import as_utc


def entries_for(payee_id: str | None = None, **criteria) -> list[EarningsEntry]:
    if payee_id is not None:
        criteria["payee_id"] = str(payee_id)
    repo = current_domain.repository_for(EarningsEntry)
    return list(repo._dao.query.filter(**criteria).all().items)


def entries_for_order(order_id: str) -> list[EarningsEntry]:
    return entries_for(order_id=str(order_id))


def payable_entries(payee_id: str) -> list[EarningsEntry]:
    """Available, unlinked entries for a payee, oldest first."""
    entries = [e for e in entries_for(payee_id, status=EntryStatus.AVAILABLE.value) if not e.is_linked]
    return sorted(entries, key=lambda e: (as_utc(e.available_date), as_utc(e.created_at)))


def matured_pending_entries(as_of) -> list[EarningsEntry]:
    return [e for e in entries_for(status=EntryStatus.PENDING.value) if e.is_matured(as_of)]


def payouts_for(payee_id: str) -> list[Payout]:
    repo = current_domain.repository_for(Payout)
    return list(repo._dao.query.filter(payee_id=str(payee_id)).all().items)


def open_payout_for(payee_id: str) -> Payout | None:
    open_values = {s.value for s in OPEN_STATUSES}
    for payout in payouts_for(payee_id):
        if payout.status in open_values:
            return payout
    return None
