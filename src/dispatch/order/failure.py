"""Delivery failure — command and handler.

An operator marks an assigned or in-transit delivery Failed, e.g. the buyer
could not be reached. The order is cancelled with the failure as its reason
and the courier's slot is released; no earnings are recorded.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome
from dispatch.order.cancellation import ALL_STEPS, release_courier_and_codes
from dispatch.order.locking import process_for_order
from dispatch.order.order import Order
from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class FailDelivery:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    as_of = DateTime()


def fail_delivery(order_id: str, reason: str, as_of=None) -> Outcome:
    return process_for_order(
        FailDelivery(order_id=str(order_id), reason=reason, as_of=as_of),
        order_id,
        with_courier=True,
        code_steps=ALL_STEPS,
    )


@dispatch.command_handler(part_of=Order)
class DeliveryFailureHandler:
    @handle(FailDelivery)
    def fail_delivery(self, command):
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            courier_id = order.fail_delivery(command.reason, now=now)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        repo.add(order)
        release_courier_and_codes(order, courier_id, now)
        logger.warning("Delivery failed", order_id=str(order.id), courier_id=courier_id, reason=command.reason)
        return Outcome.success(order_id=str(order.id), status=order.status, delivery_status=order.delivery.status)
