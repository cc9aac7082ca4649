"""Order status view — one row per order for buyers, sellers and operators."""

from protean.core.projector import on
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.order.events import (
    CourierAssigned,
    DispatchDeferred,
    DispatchTimedOut,
    OrderApproved,
    OrderCancelled,
    OrderDelivered,
    OrderPaid,
    OrderPlaced,
    PickupConfirmed,
)
from dispatch.order.order import Order


@dispatch.projection
class OrderStatusView:
    order_id = Identifier(identifier=True, required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    delivery_type = String(required=True)
    status = String(required=True)
    delivery_status = String()
    courier_id = Identifier()
    total_amount = Float()
    dispatch_attempts = Integer(default=0)
    escalated = Boolean(default=False)
    placed_at = DateTime()
    updated_at = DateTime()


@dispatch.projector(projector_for=OrderStatusView, aggregates=[Order])
class OrderStatusViewProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        current_domain.repository_for(OrderStatusView).add(
            OrderStatusView(
                order_id=event.order_id,
                buyer_id=event.buyer_id,
                seller_id=event.seller_id,
                delivery_type=event.delivery_type,
                status=event.status,
                total_amount=event.total_amount,
                dispatch_attempts=0,
                placed_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    def _update(self, order_id, updated_at, **changes):
        repo = current_domain.repository_for(OrderStatusView)
        view = repo.get(order_id)
        for name, value in changes.items():
            setattr(view, name, value)
        view.updated_at = updated_at
        repo.add(view)

    @on(OrderPaid)
    def on_order_paid(self, event):
        self._update(event.order_id, event.paid_at, status=event.status)

    @on(OrderApproved)
    def on_order_approved(self, event):
        self._update(event.order_id, event.approved_at, status=event.status, delivery_status=event.delivery_status)

    @on(CourierAssigned)
    def on_courier_assigned(self, event):
        self._update(
            event.order_id,
            event.assigned_at,
            status=event.status,
            delivery_status=event.delivery_status,
            courier_id=event.courier_id,
        )

    @on(PickupConfirmed)
    def on_pickup_confirmed(self, event):
        self._update(event.order_id, event.picked_up_at, status=event.status, delivery_status=event.delivery_status)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        self._update(event.order_id, event.delivered_at, status=event.status, delivery_status=event.delivery_status)

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        self._update(event.order_id, event.cancelled_at, status=event.status, delivery_status=event.delivery_status)

    @on(DispatchDeferred)
    def on_dispatch_deferred(self, event):
        self._update(event.order_id, event.deferred_at, dispatch_attempts=event.attempt_number)

    @on(DispatchTimedOut)
    def on_dispatch_timed_out(self, event):
        self._update(
            event.order_id,
            event.escalated_at,
            dispatch_attempts=event.attempt_count,
            escalated=True,
        )
