"""Order approval — command and handler.

Approval is the "ready for dispatch" point: the resulting OrderApproved event
carries ``requires_dispatch`` for platform deliveries, which the matcher picks
up.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, Outcome
from dispatch.order.order import Order


@dispatch.command(part_of="Order")
class ApproveOrder:
    order_id = Identifier(required=True)
    approved_by = String(max_length=255)
    as_of = DateTime()


@dispatch.command_handler(part_of=Order)
class ApprovalHandler:
    @handle(ApproveOrder)
    def approve(self, command):
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        try:
            order.approve(approved_by=command.approved_by, now=command.as_of)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, order_id=str(order.id))

        repo.add(order)
        return Outcome.success(order_id=str(order.id), status=order.status)
