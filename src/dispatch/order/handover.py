"""Delivery confirmation — command and handler.

The buyer's code proves the handover. On success the order is Delivered, the
courier's capacity slot is released and its delivery total incremented, all in
one unit of work. The OrderDelivered event then drives ledger entry creation.
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
from dispatch.order.order import Order, OrderStatus
from dispatch.utils.clock import utcnow
from dispatch.verification.code import VerificationStep
from dispatch.verification.validation import check_code

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class ConfirmDelivery:
    order_id = Identifier(required=True)
    secret = String(required=True, max_length=255)
    as_of = DateTime()


def confirm_delivery(order_id: str, secret: str, as_of=None) -> Outcome:
    return process_for_order(
        ConfirmDelivery(order_id=str(order_id), secret=secret, as_of=as_of),
        order_id,
        with_courier=True,
        code_steps=(VerificationStep.DELIVERY.value,),
    )


@dispatch.command_handler(part_of=Order)
class HandoverHandler:
    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            order.assert_can_transition(OrderStatus.DELIVERED)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        verified = check_code(order.delivery.id, VerificationStep.DELIVERY.value, command.secret, now=now)
        if not verified.ok:
            return Outcome.failure(verified.error, verified.message, reason=verified.reason, order_id=str(order.id))

        courier_id = str(order.assigned_courier_id)
        order.confirm_delivery(now=now)
        repo.add(order)

        if order.needs_courier_slot:
            courier_repo = current_domain.repository_for(Courier)
            courier = courier_repo.get(courier_id)
            if courier.release_slot(order.id, completed=True, now=now):
                courier_repo.add(courier)
            else:
                logger.warning("Courier held no slot for delivered order", order_id=str(order.id), courier_id=courier_id)

        return Outcome.success(order_id=str(order.id), status=order.status, courier_id=courier_id)
