"""Delivery audit log — append-only trail of every delivery status change.

Kept separately from the order so a disputed delivery can be reconstructed
from the delivery's own history.
"""

import uuid

from protean.core.projector import on
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.order.events import (
    CourierAssigned,
    DeliveryFailed,
    OrderApproved,
    OrderCancelled,
    OrderDelivered,
    PickupConfirmed,
)
from dispatch.order.order import Order


@dispatch.projection
class DeliveryAuditLog:
    entry_id = Identifier(identifier=True, required=True)
    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    event_type = String(required=True)
    delivery_status = String(required=True)
    courier_id = Identifier()
    description = String(required=True, max_length=500)
    occurred_at = DateTime(required=True)
    notes = Text()


def _add_entry(event, event_type, description, occurred_at, courier_id=None, notes=None):
    if not event.delivery_id or not event.delivery_status:
        return
    current_domain.repository_for(DeliveryAuditLog).add(
        DeliveryAuditLog(
            entry_id=str(uuid.uuid4()),
            delivery_id=event.delivery_id,
            order_id=event.order_id,
            event_type=event_type,
            delivery_status=event.delivery_status,
            courier_id=courier_id,
            description=description,
            occurred_at=occurred_at,
            notes=notes,
        )
    )


@dispatch.projector(projector_for=DeliveryAuditLog, aggregates=[Order])
class DeliveryAuditLogProjector:
    @on(OrderApproved)
    def on_order_approved(self, event):
        _add_entry(event, "DeliveryCreated", "Delivery opened, waiting for a courier", event.approved_at)

    @on(CourierAssigned)
    def on_courier_assigned(self, event):
        _add_entry(
            event,
            "CourierAssigned",
            f"Courier {event.courier_id} assigned ({event.verification_method})",
            event.assigned_at,
            courier_id=event.courier_id,
        )

    @on(PickupConfirmed)
    def on_pickup_confirmed(self, event):
        _add_entry(event, "PickupConfirmed", "Courier collected the goods", event.picked_up_at, event.courier_id)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        _add_entry(event, "DeliveryConfirmed", "Buyer confirmed receipt", event.delivered_at, event.courier_id)

    @on(DeliveryFailed)
    def on_delivery_failed(self, event):
        _add_entry(event, "DeliveryFailed", f"Delivery failed: {event.reason}", event.failed_at, event.courier_id)

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        _add_entry(
            event,
            "DeliveryCancelled",
            f"Order cancelled: {event.reason}",
            event.cancelled_at,
            courier_id=event.released_courier_id,
        )
