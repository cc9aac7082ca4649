"""Order aggregate (CQRS) — the order/delivery state machine.

The Order is handed over by the buyer transaction and mutated only through the
transitions below. Each transition checks its precondition before touching any
field and raises a typed ``DispatchRuleViolation`` when it is unmet, so a
rejected call leaves the aggregate exactly as it was.

State Machine:
    PLACED → PAID → APPROVED → ASSIGNED → IN_TRANSIT → DELIVERED
    PLACED → APPROVED (payment already confirmed)
    {PLACED, PAID, APPROVED, ASSIGNED, IN_TRANSIT} → CANCELLED

The Delivery entity is the order's independently auditable shadow. It is
created Pending when a deliverable order is approved, becomes Assigned when a
courier takes the job, and follows the order until it is Delivered, Failed or
Cancelled. Pickup orders are collected by the buyer and never get one.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from dispatch.domain import dispatch
from dispatch.errors import AlreadyAssigned, InvalidTransition
from dispatch.order.events import (
    CourierAssigned,
    DeliveryFailed,
    DispatchDeferred,
    DispatchTimedOut,
    OrderApproved,
    OrderCancelled,
    OrderDelivered,
    OrderPaid,
    OrderPlaced,
    PickupConfirmed,
)
from dispatch.shared.geo import GeoPoint, distance_km
from dispatch.utils.clock import as_utc, utcnow
from dispatch.verification.code import VerificationMethod


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PLACED = "Placed"
    PAID = "Paid"
    APPROVED = "Approved"
    ASSIGNED = "Assigned"
    IN_TRANSIT = "In_Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    REFUNDED = "Refunded"


class OrderType(Enum):
    REGULAR = "regular"
    QERCHA = "qercha"


class DeliveryType(Enum):
    PLATFORM = "platform"
    SELLER = "seller"
    PICKUP = "pickup"


class DeliveryStatus(Enum):
    PENDING = "Pending"
    ASSIGNED = "Assigned"
    IN_TRANSIT = "In_Transit"
    DELIVERED = "Delivered"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PLACED: {OrderStatus.PAID, OrderStatus.APPROVED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.APPROVED, OrderStatus.CANCELLED},
    OrderStatus.APPROVED: {OrderStatus.ASSIGNED, OrderStatus.CANCELLED},
    OrderStatus.ASSIGNED: {OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED},
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}

# Statuses in which the order holds a courier
COURIER_HELD_STATUSES = {OrderStatus.ASSIGNED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dispatch.entity(part_of="Order")
class Delivery:
    """The physical delivery job paired with an order."""

    courier_id = Identifier()
    status = String(
        max_length=20,
        choices=DeliveryStatus,
        default=DeliveryStatus.PENDING.value,
    )
    verification_method = String(
        max_length=10,
        choices=VerificationMethod,
        default=VerificationMethod.OTP.value,
    )
    distance_km = Float()
    assigned_at = DateTime()
    pickup_confirmed_at = DateTime()
    delivery_confirmed_at = DateTime()
    failed_at = DateTime()
    cancelled_at = DateTime()
    notes = Text()
    courier_rating = Integer(min_value=1, max_value=5)
    created_at = DateTime()
    updated_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@dispatch.aggregate
class Order:
    order_type = String(max_length=20, choices=OrderType, default=OrderType.REGULAR.value)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    status = String(max_length=20, choices=OrderStatus, default=OrderStatus.PLACED.value)
    payment_status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.UNPAID.value)
    delivery_type = String(max_length=20, choices=DeliveryType, default=DeliveryType.PLATFORM.value)
    assigned_courier_id = Identifier()
    seller_location = ValueObject(GeoPoint)
    buyer_location = ValueObject(GeoPoint)
    total_amount = Float(required=True, min_value=0.0)
    delivery_fee = Float(min_value=0.0)
    deliveries = HasMany(Delivery)

    approved_at = DateTime()
    approved_by = String(max_length=255)
    picked_up_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = String(max_length=500)

    dispatch_attempts = Integer(default=0)
    dispatch_escalated_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def courier_held_only_while_active(self):
        holds_courier = OrderStatus(self.status) in COURIER_HELD_STATUSES
        if holds_courier and not self.assigned_courier_id:
            raise ValidationError({"assigned_courier_id": [f"A {self.status} order must have an assigned courier"]})
        if not holds_courier and self.assigned_courier_id:
            raise ValidationError({"assigned_courier_id": [f"A {self.status} order cannot hold a courier"]})

    @invariant.post
    def at_most_one_delivery(self):
        if len(self.deliveries) > 1:
            raise ValidationError({"deliveries": ["An order has at most one delivery"]})

    @invariant.post
    def pickup_orders_have_no_delivery(self):
        if self.delivery_type == DeliveryType.PICKUP.value and self.deliveries:
            raise ValidationError({"deliveries": ["Pickup orders are collected by the buyer"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id: str,
        seller_id: str,
        total_amount: float,
        delivery_type: str = DeliveryType.PLATFORM.value,
        order_type: str = OrderType.REGULAR.value,
        seller_location: GeoPoint | None = None,
        buyer_location: GeoPoint | None = None,
        delivery_fee: float | None = None,
        order_id: str | None = None,
        now: datetime | None = None,
    ):
        """Register an order handed over by the buyer transaction."""
        now = now or utcnow()
        kwargs = {"id": order_id} if order_id else {}
        order = cls(
            buyer_id=buyer_id,
            seller_id=seller_id,
            total_amount=total_amount,
            delivery_type=delivery_type,
            order_type=order_type,
            seller_location=seller_location,
            buyer_location=buyer_location,
            delivery_fee=delivery_fee,
            status=OrderStatus.PLACED.value,
            payment_status=PaymentStatus.UNPAID.value,
            dispatch_attempts=0,
            created_at=now,
            updated_at=now,
            **kwargs,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                buyer_id=str(buyer_id),
                seller_id=str(seller_id),
                order_type=order.order_type,
                delivery_type=order.delivery_type,
                total_amount=total_amount,
                status=order.status,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def delivery(self) -> Delivery | None:
        return self.deliveries[0] if self.deliveries else None

    @property
    def trip_distance_km(self) -> float | None:
        """Great-circle distance from the seller to the buyer."""
        return distance_km(self.seller_location, self.buyer_location)

    @property
    def amount(self) -> Decimal:
        return Decimal(str(self.total_amount or 0))

    def assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(f"Cannot transition from {current.value} to {target_status.value}")

    def _touch(self, now: datetime) -> datetime:
        """Advance ``updated_at``, never moving it backwards."""
        current = as_utc(self.updated_at)
        stamp = now if current is None or as_utc(now) > current else current
        self.updated_at = stamp
        return stamp

    def _delivery_status(self) -> str | None:
        return self.delivery.status if self.delivery else None

    # -------------------------------------------------------------------
    # Payment and approval
    # -------------------------------------------------------------------
    def record_payment(self, now: datetime | None = None) -> None:
        """Record the payment collaborator's confirmation."""
        if self.payment_status == PaymentStatus.PAID.value:
            raise InvalidTransition("Payment has already been recorded for this order")
        self.assert_can_transition(OrderStatus.PAID)

        now = now or utcnow()
        self.payment_status = PaymentStatus.PAID.value
        self.status = OrderStatus.PAID.value
        self._touch(now)
        self.raise_(OrderPaid(order_id=str(self.id), status=self.status, paid_at=now))

    def approve(self, approved_by: str | None = None, now: datetime | None = None) -> None:
        """Approve a paid order, making platform deliveries ready for dispatch."""
        current = OrderStatus(self.status)
        if current not in (OrderStatus.PLACED, OrderStatus.PAID):
            raise InvalidTransition(f"Cannot approve an order in {current.value} status")
        if self.payment_status != PaymentStatus.PAID.value:
            raise InvalidTransition("Cannot approve an order whose payment is not confirmed")

        now = now or utcnow()
        requires_dispatch = self.delivery_type == DeliveryType.PLATFORM.value
        with atomic_change(self):
            self.status = OrderStatus.APPROVED.value
            self.approved_at = now
            self.approved_by = approved_by
            if self.delivery_type != DeliveryType.PICKUP.value and not self.deliveries:
                self.add_deliveries(
                    Delivery(
                        status=DeliveryStatus.PENDING.value,
                        distance_km=self.trip_distance_km,
                        created_at=now,
                        updated_at=now,
                    )
                )
            self._touch(now)

        self.raise_(
            OrderApproved(
                order_id=str(self.id),
                delivery_type=self.delivery_type,
                requires_dispatch=requires_dispatch,
                delivery_id=str(self.delivery.id) if self.delivery else None,
                delivery_status=self._delivery_status(),
                approved_by=approved_by,
                status=self.status,
                approved_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    @property
    def needs_courier_slot(self) -> bool:
        return self.delivery_type == DeliveryType.PLATFORM.value

    def assert_assignable(self, courier_id: str) -> None:
        """Conditional-assign guard: the order must be Approved and hold no courier."""
        current = OrderStatus(self.status)
        if self.assigned_courier_id or current in (*COURIER_HELD_STATUSES, OrderStatus.CANCELLED):
            raise AlreadyAssigned(f"Order {self.id} is no longer open for assignment ({current.value})")
        if current != OrderStatus.APPROVED:
            raise InvalidTransition(f"Cannot assign a courier to an order in {current.value} status")
        if self.delivery_type == DeliveryType.PICKUP.value:
            raise InvalidTransition("Pickup orders are collected by the buyer and never assigned")
        if self.delivery_type == DeliveryType.SELLER.value and str(courier_id) != str(self.seller_id):
            raise InvalidTransition("Seller-delivered orders can only be assigned to the seller")

    def assign_courier(
        self,
        courier_id: str,
        verification_method: str = VerificationMethod.OTP.value,
        now: datetime | None = None,
    ) -> Delivery:
        """Hand the order to a courier, provided nobody holds it yet."""
        self.assert_assignable(courier_id)

        now = now or utcnow()
        with atomic_change(self):
            delivery = self.delivery
            if delivery is None:
                delivery = Delivery(distance_km=self.trip_distance_km, created_at=now)
                self.add_deliveries(delivery)
            delivery.courier_id = courier_id
            delivery.status = DeliveryStatus.ASSIGNED.value
            delivery.verification_method = verification_method
            delivery.assigned_at = now
            delivery.updated_at = now

            self.status = OrderStatus.ASSIGNED.value
            self.assigned_courier_id = courier_id
            self._touch(now)

        self.raise_(
            CourierAssigned(
                order_id=str(self.id),
                delivery_id=str(delivery.id),
                courier_id=str(courier_id),
                seller_id=str(self.seller_id),
                buyer_id=str(self.buyer_id),
                delivery_type=self.delivery_type,
                verification_method=verification_method,
                distance_km=delivery.distance_km,
                status=self.status,
                delivery_status=delivery.status,
                assigned_at=now,
            )
        )
        return delivery

    # -------------------------------------------------------------------
    # Pickup and handover
    # -------------------------------------------------------------------
    def confirm_pickup(self, now: datetime | None = None) -> None:
        """The courier holds the goods; the order is on its way."""
        self.assert_can_transition(OrderStatus.IN_TRANSIT)

        now = now or utcnow()
        delivery = self.delivery
        with atomic_change(self):
            self.status = OrderStatus.IN_TRANSIT.value
            self.picked_up_at = now
            delivery.status = DeliveryStatus.IN_TRANSIT.value
            delivery.pickup_confirmed_at = now
            delivery.updated_at = now
            self._touch(now)

        self.raise_(
            PickupConfirmed(
                order_id=str(self.id),
                delivery_id=str(delivery.id),
                courier_id=str(self.assigned_courier_id),
                buyer_id=str(self.buyer_id),
                verification_method=delivery.verification_method,
                status=self.status,
                delivery_status=delivery.status,
                picked_up_at=now,
            )
        )

    def confirm_delivery(self, now: datetime | None = None) -> None:
        """The buyer received the goods; the order is complete."""
        self.assert_can_transition(OrderStatus.DELIVERED)

        now = now or utcnow()
        delivery = self.delivery
        with atomic_change(self):
            self.status = OrderStatus.DELIVERED.value
            self.delivered_at = now
            delivery.status = DeliveryStatus.DELIVERED.value
            delivery.delivery_confirmed_at = now
            delivery.updated_at = now
            self._touch(now)

        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                delivery_id=str(delivery.id),
                courier_id=str(self.assigned_courier_id),
                seller_id=str(self.seller_id),
                buyer_id=str(self.buyer_id),
                delivery_type=self.delivery_type,
                total_amount=self.total_amount,
                delivery_fee=self.delivery_fee,
                distance_km=delivery.distance_km,
                status=self.status,
                delivery_status=delivery.status,
                delivered_at=now,
            )
        )

    def record_rating(self, score: int, now: datetime | None = None) -> str:
        """Keep the buyer's score for the courier. Returns the courier to credit."""
        if OrderStatus(self.status) != OrderStatus.DELIVERED:
            raise InvalidTransition("Only delivered orders can be rated")
        delivery = self.delivery
        if delivery.courier_rating:
            raise InvalidTransition("This delivery has already been rated")

        now = now or utcnow()
        delivery.courier_rating = score
        delivery.updated_at = now
        self._touch(now)
        return str(self.assigned_courier_id)

    # -------------------------------------------------------------------
    # Cancellation and failure
    # -------------------------------------------------------------------
    def cancel(self, reason: str, now: datetime | None = None) -> str | None:
        """Cancel the order before delivery.

        Returns the courier whose capacity slot the caller must release, if any.
        The courier stays recorded on the delivery.
        """
        self.assert_can_transition(OrderStatus.CANCELLED)

        now = now or utcnow()
        previous_status = self.status
        released_courier_id = self.assigned_courier_id
        delivery = self.delivery
        with atomic_change(self):
            self.status = OrderStatus.CANCELLED.value
            self.assigned_courier_id = None
            self.cancelled_at = now
            self.cancellation_reason = reason
            if delivery is not None and delivery.status != DeliveryStatus.FAILED.value:
                delivery.status = DeliveryStatus.CANCELLED.value
                delivery.cancelled_at = now
                delivery.updated_at = now
            self._touch(now)

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                buyer_id=str(self.buyer_id),
                seller_id=str(self.seller_id),
                previous_status=previous_status,
                reason=reason,
                released_courier_id=str(released_courier_id) if released_courier_id else None,
                delivery_id=str(delivery.id) if delivery else None,
                delivery_status=self._delivery_status(),
                status=self.status,
                cancelled_at=now,
            )
        )
        return str(released_courier_id) if released_courier_id else None

    def fail_delivery(self, reason: str, now: datetime | None = None) -> str:
        """Mark an assigned or in-transit delivery failed and cancel the order."""
        current = OrderStatus(self.status)
        if current not in (OrderStatus.ASSIGNED, OrderStatus.IN_TRANSIT):
            raise InvalidTransition(f"Cannot fail a delivery for an order in {current.value} status")

        now = now or utcnow()
        delivery = self.delivery
        courier_id = str(self.assigned_courier_id)
        delivery.status = DeliveryStatus.FAILED.value
        delivery.failed_at = now
        delivery.notes = reason
        delivery.updated_at = now

        self.raise_(
            DeliveryFailed(
                order_id=str(self.id),
                delivery_id=str(delivery.id),
                courier_id=courier_id,
                reason=reason,
                status=OrderStatus.CANCELLED.value,
                delivery_status=delivery.status,
                failed_at=now,
            )
        )
        self.cancel(f"Delivery failed: {reason}", now=now)
        return courier_id

    # -------------------------------------------------------------------
    # Dispatch bookkeeping
    # -------------------------------------------------------------------
    def defer_dispatch(self, now: datetime | None = None) -> None:
        """Record a dispatch attempt that found no eligible courier."""
        if OrderStatus(self.status) != OrderStatus.APPROVED:
            raise InvalidTransition(f"Cannot defer dispatch for an order in {self.status} status")

        now = now or utcnow()
        self.dispatch_attempts = (self.dispatch_attempts or 0) + 1
        self._touch(now)
        self.raise_(
            DispatchDeferred(
                order_id=str(self.id),
                attempt_number=self.dispatch_attempts,
                status=self.status,
                deferred_at=now,
            )
        )

    def waiting_minutes(self, now: datetime) -> int:
        started = as_utc(self.approved_at or self.created_at)
        return int((as_utc(now) - started).total_seconds() // 60)

    def escalate_dispatch(self, now: datetime | None = None) -> bool:
        """Flag the order to operators once; later calls are no-ops."""
        if OrderStatus(self.status) != OrderStatus.APPROVED or self.dispatch_escalated_at:
            return False

        now = now or utcnow()
        self.dispatch_escalated_at = now
        self._touch(now)
        self.raise_(
            DispatchTimedOut(
                order_id=str(self.id),
                seller_id=str(self.seller_id),
                waited_minutes=self.waiting_minutes(now),
                attempt_count=self.dispatch_attempts or 0,
                status=self.status,
                escalated_at=now,
            )
        )
        return True
