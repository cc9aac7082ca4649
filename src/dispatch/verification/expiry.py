"""Verification code expiry sweep — marks lapsed codes Expired.

Triggered periodically by the sweeper (or the maintenance API). Each lapsed
code is expired under its own code lock through ``ExpireVerificationCode``;
the resulting VerificationCodeExpired events reach operators through the
notifier, since nobody will present those codes any more.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import LockBusy, code_key, serialized_process
from dispatch.verification.code import CodeStatus, ExpiryReason, VerificationCode, VerificationStep
from dispatch.verification.queries import codes_for, lapsed_active_codes

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="VerificationCode")
class ExpireVerificationCodes:
    """Expire every active code whose window has lapsed."""

    as_of = DateTime()  # Optional: defaults to now


@dispatch.command(part_of="VerificationCode")
class ExpireVerificationCode:
    code_id = Identifier(required=True)
    as_of = DateTime()


@dispatch.command_handler(part_of=VerificationCode)
class ExpiryHandler:
    @handle(ExpireVerificationCodes)
    def expire_lapsed(self, command):
        as_of = command.as_of or utcnow()
        lapsed = lapsed_active_codes(as_of)
        if not lapsed:
            logger.info("No lapsed verification codes", as_of=as_of.isoformat())
            return 0

        expired_count = 0
        for code in lapsed:
            try:
                if serialized_process(
                    ExpireVerificationCode(code_id=str(code.id), as_of=as_of),
                    code_key(code.delivery_id, code.step),
                ):
                    expired_count += 1
            except LockBusy:
                logger.warning("Code busy, leaving it for the next sweep", code_id=str(code.id))

        logger.info("Expired lapsed verification codes", count=expired_count, as_of=as_of.isoformat())
        return expired_count

    @handle(ExpireVerificationCode)
    def expire_one(self, command):
        as_of = command.as_of or utcnow()
        repo = current_domain.repository_for(VerificationCode)
        code = repo.get(command.code_id)
        # Re-check under the lock; the code may have been consumed meanwhile
        if not code.is_active or not code.is_lapsed(as_of):
            return False
        code.expire(ExpiryReason.LAPSED, now=as_of)
        repo.add(code)
        return True


def close_codes_for_delivery(delivery_id: str, now=None) -> int:
    """Expire every code still active for a delivery that will not continue.

    Runs inside the caller's unit of work; callers hold the delivery's code locks.
    """
    now = now or utcnow()
    repo = current_domain.repository_for(VerificationCode)
    closed = 0
    for step in VerificationStep:
        for code in codes_for(delivery_id, step.value, CodeStatus.ACTIVE):
            code.expire(ExpiryReason.ORDER_CLOSED, now=now)
            repo.add(code)
            closed += 1
    return closed
