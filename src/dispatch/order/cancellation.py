"""Order cancellation — command and handler.

Allowed from any state before Delivered. The order drops its courier (the
delivery keeps it for audit), the courier's capacity slot is released, and any
verification code still active for the delivery is closed.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome
from dispatch.order.locking import process_for_order
from dispatch.order.order import Order
from dispatch.utils.clock import utcnow
from dispatch.verification.code import VerificationStep
from dispatch.verification.expiry import close_codes_for_delivery

logger = structlog.get_logger(__name__)

ALL_STEPS = tuple(step.value for step in VerificationStep)


@dispatch.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    as_of = DateTime()


def cancel_order(order_id: str, reason: str, as_of=None) -> Outcome:
    return process_for_order(
        CancelOrder(order_id=str(order_id), reason=reason, as_of=as_of),
        order_id,
        with_courier=True,
        code_steps=ALL_STEPS,
    )


def release_courier_and_codes(order: Order, courier_id: str | None, now) -> None:
    """Undo what an assignment held: the courier slot and any live codes."""
    if courier_id and order.needs_courier_slot:
        courier_repo = current_domain.repository_for(Courier)
        courier = courier_repo.get(courier_id)
        if courier.release_slot(order.id, completed=False, now=now):
            courier_repo.add(courier)
    if order.delivery is not None:
        close_codes_for_delivery(order.delivery.id, now=now)


@dispatch.command_handler(part_of=Order)
class CancellationHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            released_courier_id = order.cancel(command.reason, now=now)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        repo.add(order)
        release_courier_and_codes(order, released_courier_id, now)
        logger.info(
            "Order cancelled",
            order_id=str(order.id),
            reason=command.reason,
            released_courier_id=released_courier_id,
        )
        return Outcome.success(order_id=str(order.id), status=order.status, released_courier_id=released_courier_id)
