"""Unassigned order sweep — periodic re-dispatch of orders nobody took.

Triggered by an external scheduler through the sweeper script (or via the
maintenance API). Every Approved platform order is offered to the matcher
again. Orders still unmatched after ``dispatch_max_wait_minutes`` raise a
one-time DispatchTimedOut event for operators; they are never failed
automatically.
"""

import structlog
from protean import handle
from protean.fields import DateTime
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import ErrorKind
from dispatch.matching.matcher import EscalateDispatch, dispatch_order
from dispatch.order.order import DeliveryType, Order, OrderStatus
from dispatch.settings import get_settings
from dispatch.utils.clock import as_utc, utcnow
from dispatch.utils.locks import LockBusy, order_key, serialized_process

logger = structlog.get_logger(__name__)


def waiting_orders() -> list[Order]:
    repo = current_domain.repository_for(Order)
    orders = repo._dao.query.filter(
        status=OrderStatus.APPROVED.value,
        delivery_type=DeliveryType.PLATFORM.value,
    ).all().items
    return sorted(orders, key=lambda o: as_utc(o.approved_at or o.created_at))


@dispatch.command(part_of="Order")
class SweepUnassignedOrders:
    """Re-dispatch approved orders still waiting for a courier."""

    as_of = DateTime()  # Optional: defaults to now


@dispatch.command_handler(part_of=Order)
class SweepHandler:
    @handle(SweepUnassignedOrders)
    def sweep(self, command):
        settings = get_settings()
        as_of = command.as_of or utcnow()
        summary = {"checked": 0, "assigned": 0, "deferred": 0, "escalated": 0}

        for order in waiting_orders():
            summary["checked"] += 1
            outcome = dispatch_order(order.id, now=as_of)
            if outcome.ok:
                summary["assigned"] += 1
                continue
            if outcome.error != ErrorKind.NO_ELIGIBLE_COURIER:
                continue

            summary["deferred"] += 1
            if order.waiting_minutes(as_of) < settings.dispatch_max_wait_minutes:
                continue
            try:
                if serialized_process(EscalateDispatch(order_id=str(order.id), as_of=as_of), order_key(order.id)):
                    summary["escalated"] += 1
            except LockBusy:
                logger.info("Order busy, escalation left for the next sweep", order_id=str(order.id))

        logger.info("Unassigned order sweep finished", as_of=as_of.isoformat(), **summary)
        return summary
