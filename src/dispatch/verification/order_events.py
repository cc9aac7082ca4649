"""Order event handler — issues verification codes as a delivery progresses.

CourierAssigned issues the pickup QR and hands it to the seller, who shows it
to the courier at collection. PickupConfirmed issues the delivery code with the
delivery's verification method and hands it to the buyer.
"""

import structlog
from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation
from dispatch.order.events import CourierAssigned, PickupConfirmed
from dispatch.utils.locks import LockBusy, code_key, serialized_process
from dispatch.verification.code import VerificationCode, VerificationMethod, VerificationStep
from dispatch.verification.issuance import IssueVerificationCode

logger = structlog.get_logger(__name__)


def _issue(command: IssueVerificationCode) -> None:
    try:
        outcome = serialized_process(command, code_key(command.delivery_id, command.step))
    except (LockBusy, DispatchRuleViolation) as exc:
        # The code can still be issued on demand with ReissueVerificationCode
        logger.error(
            "Automatic code issuance failed",
            order_id=str(command.order_id),
            delivery_id=str(command.delivery_id),
            step=command.step,
            error=str(exc),
        )
        return
    logger.info(
        "Automatic code issued",
        order_id=str(command.order_id),
        step=command.step,
        code_id=outcome.data.get("code_id"),
    )


@dispatch.event_handler(part_of=VerificationCode, stream_category="dispatch::order")
class OrderVerificationHandler:
    """Issues pickup and delivery codes for assigned orders."""

    @handle(CourierAssigned)
    def on_courier_assigned(self, event: CourierAssigned) -> None:
        _issue(
            IssueVerificationCode(
                delivery_id=str(event.delivery_id),
                order_id=str(event.order_id),
                step=VerificationStep.PICKUP.value,
                method=VerificationMethod.QR.value,
                recipient_id=str(event.seller_id),
                as_of=event.assigned_at,
            )
        )

    @handle(PickupConfirmed)
    def on_pickup_confirmed(self, event: PickupConfirmed) -> None:
        _issue(
            IssueVerificationCode(
                delivery_id=str(event.delivery_id),
                order_id=str(event.order_id),
                step=VerificationStep.DELIVERY.value,
                method=event.verification_method or VerificationMethod.OTP.value,
                recipient_id=str(event.buyer_id),
                as_of=event.picked_up_at,
            )
        )
