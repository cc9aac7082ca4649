"""Order event handler — tells buyers, sellers, couriers and operators what happened.

Notifications are fire-and-forget: a notifier failure is logged and never
undoes the state change that triggered it.
"""

import structlog
from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.notifier import notify, notify_operators
from dispatch.notifier.port import Topic
from dispatch.order.events import (
    CourierAssigned,
    DispatchTimedOut,
    OrderCancelled,
    OrderDelivered,
    PickupConfirmed,
)
from dispatch.order.order import Order

logger = structlog.get_logger(__name__)


@dispatch.event_handler(part_of=Order)
class OrderNotificationHandler:
    @handle(CourierAssigned)
    def on_courier_assigned(self, event: CourierAssigned) -> None:
        payload = {
            "order_id": str(event.order_id),
            "delivery_id": str(event.delivery_id),
            "courier_id": str(event.courier_id),
        }
        notify(event.courier_id, Topic.COURIER_ASSIGNED, **payload, seller_id=str(event.seller_id))
        notify(event.buyer_id, Topic.COURIER_ASSIGNED, **payload)

    @handle(PickupConfirmed)
    def on_pickup_confirmed(self, event: PickupConfirmed) -> None:
        notify(
            event.buyer_id,
            Topic.PICKUP_CONFIRMED,
            order_id=str(event.order_id),
            courier_id=str(event.courier_id),
        )

    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        for recipient in (event.buyer_id, event.seller_id):
            notify(recipient, Topic.ORDER_DELIVERED, order_id=str(event.order_id))

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        recipients = [event.buyer_id, event.seller_id]
        if event.released_courier_id:
            recipients.append(event.released_courier_id)
        for recipient in recipients:
            notify(recipient, Topic.ORDER_CANCELLED, order_id=str(event.order_id), reason=event.reason)

    @handle(DispatchTimedOut)
    def on_dispatch_timed_out(self, event: DispatchTimedOut) -> None:
        logger.warning("Escalating unassigned order", order_id=str(event.order_id), waited=event.waited_minutes)
        notify_operators(
            Topic.DISPATCH_TIMED_OUT,
            order_id=str(event.order_id),
            seller_id=str(event.seller_id),
            waited_minutes=event.waited_minutes,
            attempts=event.attempt_count,
        )
