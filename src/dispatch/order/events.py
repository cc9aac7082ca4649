"""Order domain events — facts about order and delivery status changes.

Every event carries the order id, the new order status and the time of the
change, which is the status-change feed exposed to collaborators. Events that
touch the delivery record also carry its id and status so the delivery trail
can be audited independently of the order.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="Order")
class OrderPlaced:
    """An order was handed over by the buyer transaction."""

    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    order_type = String(required=True)
    delivery_type = String(required=True)
    total_amount = Float(required=True)
    status = String(required=True)
    placed_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderPaid:
    """Payment for the order was confirmed by the payment collaborator."""

    __version__ = 1

    order_id = Identifier(required=True)
    status = String(required=True)
    paid_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderApproved:
    """The order is approved; platform deliveries are now ready for dispatch."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivery_type = String(required=True)
    requires_dispatch = Boolean(required=True)
    delivery_id = Identifier()
    delivery_status = String()
    approved_by = String()
    status = String(required=True)
    approved_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class CourierAssigned:
    """A courier took the order and its delivery."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    delivery_type = String(required=True)
    verification_method = String(required=True)
    distance_km = Float()
    status = String(required=True)
    delivery_status = String(required=True)
    assigned_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class PickupConfirmed:
    """The courier proved possession of the goods at the seller."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    verification_method = String(required=True)
    status = String(required=True)
    delivery_status = String(required=True)
    picked_up_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderDelivered:
    """The buyer's proof was accepted; the order is complete and can be settled."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    delivery_type = String(required=True)
    total_amount = Float(required=True)
    delivery_fee = Float()
    distance_km = Float()
    status = String(required=True)
    delivery_status = String(required=True)
    delivered_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled before delivery."""

    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    released_courier_id = Identifier()
    delivery_id = Identifier()
    delivery_status = String()
    status = String(required=True)
    cancelled_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class DeliveryFailed:
    """An operator marked the delivery failed; the order is cancelled."""

    __version__ = 1

    order_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    reason = String(required=True)
    status = String(required=True)
    delivery_status = String(required=True)
    failed_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class DispatchDeferred:
    """No eligible courier was found; the order waits for the next sweep."""

    __version__ = 1

    order_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    status = String(required=True)
    deferred_at = DateTime(required=True)


@dispatch.event(part_of="Order")
class DispatchTimedOut:
    """The order waited past the dispatch deadline; operators must intervene."""

    __version__ = 1

    order_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    waited_minutes = Integer(required=True)
    attempt_count = Integer(required=True)
    status = String(required=True)
    escalated_at = DateTime(required=True)
