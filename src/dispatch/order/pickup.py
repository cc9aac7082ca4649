"""Pickup confirmation — command and handler.

The courier presents the pickup code at the seller. The code is checked and
consumed in the same unit of work as the Assigned → In_Transit transition; a
failed check leaves the order untouched and can be retried.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome
from dispatch.order.locking import process_for_order
from dispatch.order.order import Order, OrderStatus
from dispatch.utils.clock import utcnow
from dispatch.verification.code import VerificationStep
from dispatch.verification.validation import check_code


@dispatch.command(part_of="Order")
class ConfirmPickup:
    order_id = Identifier(required=True)
    secret = String(required=True, max_length=255)
    as_of = DateTime()


def confirm_pickup(order_id: str, secret: str, as_of=None) -> Outcome:
    return process_for_order(
        ConfirmPickup(order_id=str(order_id), secret=secret, as_of=as_of),
        order_id,
        code_steps=(VerificationStep.PICKUP.value,),
    )


@dispatch.command_handler(part_of=Order)
class PickupHandler:
    @handle(ConfirmPickup)
    def confirm_pickup(self, command):
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            order.assert_can_transition(OrderStatus.IN_TRANSIT)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        verified = check_code(order.delivery.id, VerificationStep.PICKUP.value, command.secret, now=now)
        if not verified.ok:
            return Outcome.failure(verified.error, verified.message, reason=verified.reason, order_id=str(order.id))

        order.confirm_pickup(now=now)
        repo.add(order)
        return Outcome.success(order_id=str(order.id), status=order.status, delivery_id=str(order.delivery.id))
