"""Order event handler — credits the seller and the courier on delivery."""

import structlog
from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.ledger.earnings import EarningsEntry
from dispatch.ledger.recording import record_earnings
from dispatch.order.events import OrderDelivered
from dispatch.utils.locks import LockBusy

logger = structlog.get_logger(__name__)


@dispatch.event_handler(part_of=EarningsEntry, stream_category="dispatch::order")
class DeliveredOrderEarningsHandler:
    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        try:
            outcome = record_earnings(event.order_id, as_of=event.delivered_at)
        except LockBusy as exc:
            # RecordEarnings is idempotent; an operator can replay it
            logger.error("Earnings recording deferred", order_id=str(event.order_id), key=exc.key)
            return
        if not outcome.ok:
            logger.error("Earnings not recorded", order_id=str(event.order_id), error=outcome.message)
