"""Verification code issuance — commands and handler.

Issuing a code for a delivery step supersedes every code still active for that
step, so at most one code per step can ever be presented successfully. The
plaintext secret is returned once in the handler's Outcome and handed to its
recipient through the notifier; it is never stored.
"""

from datetime import datetime, timedelta

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, InvalidTransition, Outcome
from dispatch.notifier import notify
from dispatch.notifier.port import Topic
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow
from dispatch.verification.code import (
    CodeStatus,
    VerificationCode,
    VerificationMethod,
    VerificationStep,
    digest_secret,
    generate_secret,
)
from dispatch.verification.queries import active_code, codes_for, latest_code

logger = structlog.get_logger(__name__)

_TOPIC_FOR_STEP = {
    VerificationStep.PICKUP.value: Topic.PICKUP_CODE,
    VerificationStep.DELIVERY.value: Topic.DELIVERY_CODE,
}


def default_ttl_minutes(method: str) -> int:
    settings = get_settings()
    if VerificationMethod(method) == VerificationMethod.QR:
        return settings.qr_ttl_minutes
    return settings.otp_ttl_minutes


def issue_code(
    delivery_id: str,
    order_id: str,
    step: str,
    method: str,
    recipient_id: str | None = None,
    ttl_minutes: int | None = None,
    now: datetime | None = None,
) -> tuple[VerificationCode, str]:
    """Supersede active codes for the step and issue a fresh one.

    Returns the persisted-to-be code and its plaintext secret.
    """
    settings = get_settings()
    now = now or utcnow()
    repo = current_domain.repository_for(VerificationCode)

    for previous in codes_for(delivery_id, step, CodeStatus.ACTIVE):
        previous.supersede(now=now)
        repo.add(previous)

    secret = generate_secret(method, settings.otp_length)
    code = VerificationCode.issue(
        delivery_id=str(delivery_id),
        order_id=str(order_id),
        step=step,
        method=method,
        code_hash=digest_secret(settings.code_pepper, str(delivery_id), step, secret),
        ttl=timedelta(minutes=ttl_minutes or default_ttl_minutes(method)),
        recipient_id=recipient_id,
        now=now,
    )
    repo.add(code)

    logger.info(
        "Verification code issued",
        code_id=str(code.id),
        delivery_id=str(delivery_id),
        step=step,
        method=method,
        expires_at=str(code.expires_at),
    )
    return code, secret


def _hand_to_recipient(code: VerificationCode, secret: str) -> None:
    if not code.recipient_id:
        return
    notify(
        code.recipient_id,
        _TOPIC_FOR_STEP[code.step],
        order_id=str(code.order_id),
        delivery_id=str(code.delivery_id),
        method=code.method,
        secret=secret,
        expires_at=code.expires_at.isoformat(),
    )


def _issued(code: VerificationCode, secret: str) -> Outcome:
    return Outcome.success(
        code_id=str(code.id),
        delivery_id=str(code.delivery_id),
        step=code.step,
        method=code.method,
        secret=secret,
        expires_at=code.expires_at,
    )


@dispatch.command(part_of="VerificationCode")
class IssueVerificationCode:
    """Issue a single-use code for one step of a delivery."""

    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    step = String(required=True, choices=VerificationStep)
    method = String(required=True, choices=VerificationMethod)
    recipient_id = Identifier()
    ttl_minutes = Integer(min_value=1)
    as_of = DateTime()


@dispatch.command(part_of="VerificationCode")
class ReissueVerificationCode:
    """Replace the code for a delivery step, e.g. after it expired."""

    delivery_id = Identifier(required=True)
    step = String(required=True, choices=VerificationStep)
    ttl_minutes = Integer(min_value=1)
    as_of = DateTime()


@dispatch.command_handler(part_of=VerificationCode)
class IssuanceHandler:
    @handle(IssueVerificationCode)
    def issue(self, command):
        code, secret = issue_code(
            delivery_id=command.delivery_id,
            order_id=command.order_id,
            step=command.step,
            method=command.method,
            recipient_id=command.recipient_id,
            ttl_minutes=command.ttl_minutes,
            now=command.as_of,
        )
        _hand_to_recipient(code, secret)
        return _issued(code, secret)

    @handle(ReissueVerificationCode)
    def reissue(self, command):
        previous = active_code(command.delivery_id, command.step) or latest_code(command.delivery_id, command.step)
        if previous is None:
            return Outcome.not_found("Verification code for delivery", command.delivery_id)

        try:
            _assert_step_open(previous.order_id, command.step)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc)

        code, secret = issue_code(
            delivery_id=command.delivery_id,
            order_id=previous.order_id,
            step=command.step,
            method=previous.method,
            recipient_id=previous.recipient_id,
            ttl_minutes=command.ttl_minutes,
            now=command.as_of,
        )
        _hand_to_recipient(code, secret)
        return _issued(code, secret)


def _assert_step_open(order_id: str, step: str) -> None:
    """A code can only be reissued while its order is waiting on that step."""
    from dispatch.order.order import Order, OrderStatus

    expected = OrderStatus.ASSIGNED if step == VerificationStep.PICKUP.value else OrderStatus.IN_TRANSIT
    order = current_domain.repository_for(Order).get(order_id)
    if OrderStatus(order.status) != expected:
        raise InvalidTransition(f"Cannot reissue a {step} code for an order in {order.status} status")
