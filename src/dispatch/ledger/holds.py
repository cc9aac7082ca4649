"""Dispute holds on individual earnings entries."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome
from dispatch.ledger.earnings import EarningsEntry
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import payee_key, serialized_process

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="EarningsEntry")
class HoldEarnings:
    entry_id = Identifier(required=True)
    reason = String(max_length=500)
    as_of = DateTime()


@dispatch.command(part_of="EarningsEntry")
class ReleaseHold:
    entry_id = Identifier(required=True)
    as_of = DateTime()


def process_for_entry(command) -> Outcome:
    """Run an entry command under its payee's lock."""
    try:
        entry = current_domain.repository_for(EarningsEntry).get(command.entry_id)
    except ObjectNotFoundError:
        return Outcome.not_found("Earnings entry", command.entry_id)
    return serialized_process(command, payee_key(entry.payee_id))


@dispatch.command_handler(part_of=EarningsEntry)
class HoldHandler:
    @handle(HoldEarnings)
    def hold(self, command):
        repo = current_domain.repository_for(EarningsEntry)
        entry = repo.get(command.entry_id)
        try:
            entry.hold(command.reason, now=command.as_of or utcnow())
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, entry_id=str(entry.id))
        repo.add(entry)
        logger.info("Earnings held", entry_id=str(entry.id), payee_id=entry.payee_id, reason=command.reason)
        return Outcome.success(entry_id=str(entry.id), status=entry.status)

    @handle(ReleaseHold)
    def release_hold(self, command):
        repo = current_domain.repository_for(EarningsEntry)
        entry = repo.get(command.entry_id)
        try:
            entry.release_hold(now=command.as_of or utcnow())
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, entry_id=str(entry.id))
        repo.add(entry)
        logger.info("Earnings hold released", entry_id=str(entry.id), status=entry.status)
        return Outcome.success(entry_id=str(entry.id), status=entry.status)
