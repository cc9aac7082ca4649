"""Order event handler — starts dispatch when an order becomes ready.

OrderApproved carries ``requires_dispatch`` for platform deliveries. Orders
the matcher cannot place right away stay Approved for the sweep.
"""

import structlog
from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.matching.matcher import dispatch_order
from dispatch.order.events import OrderApproved
from dispatch.order.order import Order

logger = structlog.get_logger(__name__)


@dispatch.event_handler(part_of=Order)
class ReadyForDispatchHandler:
    @handle(OrderApproved)
    def on_order_approved(self, event: OrderApproved) -> None:
        if not event.requires_dispatch:
            logger.info("Order needs no courier", order_id=str(event.order_id), delivery_type=event.delivery_type)
            return

        outcome = dispatch_order(event.order_id, now=event.approved_at)
        logger.info(
            "Initial dispatch attempt",
            order_id=str(event.order_id),
            ok=outcome.ok,
            error=outcome.error.value if outcome.error else None,
        )
