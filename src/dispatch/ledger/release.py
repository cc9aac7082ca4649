"""Holding-period sweep — pending earnings become available once matured.

Triggered periodically by the sweeper (or the maintenance API). Entries are
released payee by payee, each under that payee's lock, so a release never
interleaves with a payout request batching the same payee's entries.
"""

from collections import defaultdict

import structlog
from protean import handle
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.ledger.earnings import EarningsEntry, EntryStatus
from dispatch.ledger.queries import entries_for, matured_pending_entries
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import LockBusy, payee_key, serialized_process

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="EarningsEntry")
class ReleaseMaturedEarnings:
    as_of = DateTime()  # Optional: defaults to now


@dispatch.command(part_of="EarningsEntry")
class ReleasePayeeEarnings:
    payee_id = Identifier(required=True)
    as_of = DateTime()


@dispatch.command_handler(part_of=EarningsEntry)
class ReleaseHandler:
    @handle(ReleaseMaturedEarnings)
    def release_matured(self, command):
        as_of = command.as_of or utcnow()
        by_payee = defaultdict(int)
        for entry in matured_pending_entries(as_of):
            by_payee[entry.payee_id] += 1

        released = 0
        for payee_id in by_payee:
            try:
                released += serialized_process(
                    ReleasePayeeEarnings(payee_id=payee_id, as_of=as_of),
                    payee_key(payee_id),
                )
            except LockBusy:
                logger.warning("Payee busy, leaving earnings for the next sweep", payee_id=payee_id)

        logger.info("Released matured earnings", count=released, payees=len(by_payee), as_of=as_of.isoformat())
        return released

    @handle(ReleasePayeeEarnings)
    def release_for_payee(self, command):
        as_of = command.as_of or utcnow()
        repo = current_domain.repository_for(EarningsEntry)
        released = 0
        for entry in entries_for(command.payee_id, status=EntryStatus.PENDING.value):
            if not entry.is_matured(as_of):
                continue
            entry.release(now=as_of)
            repo.add(entry)
            released += 1
        return released
