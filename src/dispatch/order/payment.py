"""Payment confirmation — command and handler.

Consumes the payment collaborator's confirmation. A ``Paid`` confirmation moves
the order to Paid and, when auto-approval is configured, straight on to
Approved in the same unit of work.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, ErrorKind, Outcome
from dispatch.order.order import Order, PaymentStatus
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)

AUTO_APPROVER = "payment-confirmation"


@dispatch.command(part_of="Order")
class ConfirmPayment:
    order_id = Identifier(required=True)
    payment_status = String(required=True, choices=PaymentStatus)
    as_of = DateTime()


@dispatch.command_handler(part_of=Order)
class PaymentConfirmationHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        if command.payment_status != PaymentStatus.PAID.value:
            logger.info(
                "Payment not confirmed, order unchanged",
                order_id=str(command.order_id),
                payment_status=command.payment_status,
            )
            return Outcome.failure(
                ErrorKind.INVALID_TRANSITION,
                f"Payment status {command.payment_status} does not confirm the order",
                order_id=str(command.order_id),
            )

        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            order.record_payment(now=now)
            if get_settings().auto_approve_on_payment:
                order.approve(approved_by=AUTO_APPROVER, now=now)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        repo.add(order)
        return Outcome.success(order_id=str(order.id), status=order.status)
