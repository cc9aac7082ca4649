"""Verification code validation — command, handler and the shared check.

``check_code`` runs inside the caller's unit of work, so the order transitions
that depend on a code (pickup, delivery) consume it atomically with the state
change. Callers hold the ``code:<delivery>:<step>`` lock, which serializes
duplicate submissions of the same secret: the first one consumes the code and
every later one sees ``Mismatch``.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import ErrorKind, Outcome, VerificationFailure
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow
from dispatch.verification.code import CodeStatus, ExpiryReason, VerificationCode, VerificationStep
from dispatch.verification.queries import active_code, latest_code

logger = structlog.get_logger(__name__)


def _failed(reason: VerificationFailure, message: str) -> Outcome:
    return Outcome.failure(ErrorKind.VERIFICATION_FAILED, message, reason=reason)


def check_code(delivery_id: str, step: str, secret: str, now: datetime | None = None) -> Outcome:
    """Validate a presented secret and consume the code on success."""
    settings = get_settings()
    now = now or utcnow()
    repo = current_domain.repository_for(VerificationCode)

    code = active_code(delivery_id, step)
    if code is None:
        last = latest_code(delivery_id, step)
        if last is not None and last.status == CodeStatus.EXPIRED.value:
            return _failed(VerificationFailure.EXPIRED, "Code has expired; request a new one")
        logger.info("No active verification code", delivery_id=str(delivery_id), step=step)
        return _failed(VerificationFailure.MISMATCH, "No active code for this delivery step")

    if code.is_lapsed(now):
        code.expire(ExpiryReason.LAPSED, now=now)
        repo.add(code)
        logger.info("Verification code lapsed", code_id=str(code.id), delivery_id=str(delivery_id), step=step)
        return _failed(VerificationFailure.EXPIRED, "Code has expired; request a new one")

    if not code.matches(settings.code_pepper, secret):
        burned = code.record_mismatch(settings.max_verification_attempts, now=now)
        repo.add(code)
        logger.warning(
            "Verification code mismatch",
            code_id=str(code.id),
            delivery_id=str(delivery_id),
            step=step,
            failed_attempts=code.failed_attempts,
            burned=burned,
        )
        return _failed(VerificationFailure.MISMATCH, "Code does not match")

    code.consume(now=now)
    repo.add(code)
    return Outcome.success(code_id=str(code.id), delivery_id=str(delivery_id), step=step)


@dispatch.command(part_of="VerificationCode")
class ValidateVerificationCode:
    """Validate and consume a code outside an order transition."""

    delivery_id = Identifier(required=True)
    step = String(required=True, choices=VerificationStep)
    secret = String(required=True, max_length=255)
    as_of = DateTime()


@dispatch.command_handler(part_of=VerificationCode)
class ValidationHandler:
    @handle(ValidateVerificationCode)
    def validate(self, command):
        return check_code(command.delivery_id, command.step, command.secret, now=command.as_of)
