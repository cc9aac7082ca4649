"""Courier assignment — command and handler.

``MarkAssigned`` is the conditional assign: it succeeds only while the order is
Approved with no courier, and for platform deliveries only while the courier
has a free capacity slot. The order and the courier slot change in one unit of
work, under the order and courier locks, so an order never gets two couriers
and a courier slot is never handed out twice. Losing either race yields
``AlreadyAssigned``, which callers treat as a normal branch.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import CourierAtCapacity, DispatchRuleViolation, Outcome
from dispatch.order.order import Order
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import courier_key, order_key, serialized_process
from dispatch.verification.code import VerificationMethod

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class MarkAssigned:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    verification_method = String(choices=VerificationMethod, default=VerificationMethod.OTP.value)
    as_of = DateTime()


def mark_assigned(order_id: str, courier_id: str, **kwargs) -> Outcome:
    """Run MarkAssigned under the order and courier locks."""
    command = MarkAssigned(order_id=str(order_id), courier_id=str(courier_id), **kwargs)
    return serialized_process(command, order_key(order_id), courier_key(courier_id))


@dispatch.command_handler(part_of=Order)
class AssignmentHandler:
    @handle(MarkAssigned)
    def mark_assigned(self, command):
        settings = get_settings()
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)

        courier = None
        try:
            order.assert_assignable(command.courier_id)
            if order.needs_courier_slot:
                courier_repo = current_domain.repository_for(Courier)
                try:
                    courier = courier_repo.get(command.courier_id)
                except ObjectNotFoundError:
                    return Outcome.not_found("Courier", command.courier_id)
                if not courier.has_free_slot(settings.multi_job_capacity):
                    raise CourierAtCapacity(f"Courier {courier.id} has no free capacity slot")
        except DispatchRuleViolation as exc:
            logger.info(
                "Assignment refused",
                order_id=str(order.id),
                courier_id=str(command.courier_id),
                error=exc.kind.value,
                reason=exc.message,
            )
            return Outcome.from_violation(exc, order_id=str(order.id), courier_id=str(command.courier_id))

        delivery = order.assign_courier(command.courier_id, command.verification_method, now=now)
        repo.add(order)
        if courier is not None:
            courier.reserve_slot(order.id, settings.multi_job_capacity, now=now)
            current_domain.repository_for(Courier).add(courier)

        logger.info(
            "Courier assigned",
            order_id=str(order.id),
            courier_id=str(command.courier_id),
            delivery_id=str(delivery.id),
        )
        return Outcome.success(
            order_id=str(order.id),
            courier_id=str(command.courier_id),
            delivery_id=str(delivery.id),
            status=order.status,
        )
