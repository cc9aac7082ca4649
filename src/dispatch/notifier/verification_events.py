"""Verification event handler — surfaces codes nobody can use any more."""

from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.notifier import notify_operators
from dispatch.notifier.port import Topic
from dispatch.verification.code import ExpiryReason, VerificationCode
from dispatch.verification.events import VerificationCodeExpired

# Codes closed with their order need no attention
_SURFACED_REASONS = {ExpiryReason.LAPSED.value, ExpiryReason.ATTEMPTS_EXHAUSTED.value}


@dispatch.event_handler(part_of=VerificationCode)
class VerificationNotificationHandler:
    @handle(VerificationCodeExpired)
    def on_code_expired(self, event: VerificationCodeExpired) -> None:
        if event.reason not in _SURFACED_REASONS:
            return
        notify_operators(
            Topic.VERIFICATION_EXPIRED,
            order_id=str(event.order_id),
            delivery_id=str(event.delivery_id),
            step=event.step,
            reason=event.reason,
        )
