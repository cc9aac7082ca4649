"""Tests for the Order state machine — valid and invalid transitions."""

import pytest
from dispatch.errors import AlreadyAssigned, ErrorKind, InvalidTransition
from dispatch.order.events import (
    CourierAssigned,
    DeliveryFailed,
    OrderApproved,
    OrderCancelled,
    OrderDelivered,
    OrderPaid,
    OrderPlaced,
    PickupConfirmed,
)
from dispatch.order.order import (
    DeliveryStatus,
    DeliveryType,
    Order,
    OrderStatus,
    PaymentStatus,
)
from dispatch.shared.geo import GeoPoint
from protean.exceptions import ValidationError

SELLER_AT = GeoPoint(latitude=9.0300, longitude=38.7400)
BUYER_AT = GeoPoint(latitude=9.0100, longitude=38.7600)


def _make_order(**overrides):
    kwargs = {
        "buyer_id": "buyer-1",
        "seller_id": "seller-1",
        "total_amount": 1000.0,
        "seller_location": SELLER_AT,
        "buyer_location": BUYER_AT,
    }
    kwargs.update(overrides)
    return Order.place(**kwargs)


def _approved(**overrides):
    order = _make_order(**overrides)
    order.record_payment()
    order.approve(approved_by="ops-1")
    return order


def _assigned(courier_id="courier-1", **overrides):
    order = _approved(**overrides)
    order.assign_courier(courier_id)
    return order


def _in_transit(**overrides):
    order = _assigned(**overrides)
    order.confirm_pickup()
    return order


class TestPlacement:
    def test_new_order_is_placed_and_unpaid(self):
        order = _make_order()
        assert order.status == OrderStatus.PLACED.value
        assert order.payment_status == PaymentStatus.UNPAID.value
        assert order.assigned_courier_id is None
        assert order.deliveries == []

    def test_placement_raises_order_placed(self):
        order = _make_order()
        assert isinstance(order._events[-1], OrderPlaced)
        assert order._events[-1].total_amount == 1000.0

    def test_keeps_the_buyer_transaction_id(self):
        order = _make_order(order_id="ord-from-checkout")
        assert str(order.id) == "ord-from-checkout"

    def test_trip_distance_is_great_circle_between_seller_and_buyer(self):
        order = _make_order()
        assert order.trip_distance_km == pytest.approx(3.1, abs=0.1)


class TestValidTransitions:
    def test_placed_to_paid(self):
        order = _make_order()
        order.record_payment()
        assert order.status == OrderStatus.PAID.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert isinstance(order._events[-1], OrderPaid)

    def test_paid_to_approved_opens_a_pending_delivery(self):
        order = _approved()
        assert order.status == OrderStatus.APPROVED.value
        assert order.delivery.status == DeliveryStatus.PENDING.value
        assert order.delivery.courier_id is None
        event = order._events[-1]
        assert isinstance(event, OrderApproved)
        assert event.requires_dispatch is True
        assert event.delivery_id == str(order.delivery.id)

    def test_placed_to_approved_when_payment_already_confirmed(self):
        order = _make_order()
        order.payment_status = PaymentStatus.PAID.value
        order.approve()
        assert order.status == OrderStatus.APPROVED.value

    def test_approved_to_assigned(self):
        order = _assigned()
        assert order.status == OrderStatus.ASSIGNED.value
        assert order.assigned_courier_id == "courier-1"
        assert order.delivery.status == DeliveryStatus.ASSIGNED.value
        assert order.delivery.courier_id == "courier-1"
        assert isinstance(order._events[-1], CourierAssigned)

    def test_assigned_to_in_transit(self):
        order = _in_transit()
        assert order.status == OrderStatus.IN_TRANSIT.value
        assert order.delivery.status == DeliveryStatus.IN_TRANSIT.value
        assert order.picked_up_at is not None
        assert isinstance(order._events[-1], PickupConfirmed)

    def test_in_transit_to_delivered(self):
        order = _in_transit()
        order.confirm_delivery()
        assert order.status == OrderStatus.DELIVERED.value
        assert order.delivery.status == DeliveryStatus.DELIVERED.value
        assert order.assigned_courier_id == "courier-1"
        event = order._events[-1]
        assert isinstance(event, OrderDelivered)
        assert event.courier_id == "courier-1"
        assert event.total_amount == 1000.0

    @pytest.mark.parametrize("advance", [_make_order, _approved, _assigned, _in_transit])
    def test_cancel_from_every_open_status(self, advance):
        order = advance()
        order.cancel("buyer changed their mind")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.assigned_courier_id is None
        assert isinstance(order._events[-1], OrderCancelled)


class TestInvalidTransitions:
    def test_cannot_approve_unpaid_order(self):
        order = _make_order()
        with pytest.raises(InvalidTransition):
            order.approve()
        assert order.status == OrderStatus.PLACED.value

    def test_cannot_record_payment_twice(self):
        order = _make_order()
        order.record_payment()
        with pytest.raises(InvalidTransition):
            order.record_payment()

    def test_cannot_pick_up_before_assignment(self):
        order = _approved()
        with pytest.raises(InvalidTransition):
            order.confirm_pickup()

    def test_cannot_deliver_before_pickup(self):
        order = _assigned()
        with pytest.raises(InvalidTransition):
            order.confirm_delivery()

    def test_cannot_cancel_delivered_order(self):
        order = _in_transit()
        order.confirm_delivery()
        with pytest.raises(InvalidTransition):
            order.cancel("too late")
        assert order.status == OrderStatus.DELIVERED.value

    def test_cannot_cancel_twice(self):
        order = _approved()
        order.cancel("first")
        with pytest.raises(InvalidTransition):
            order.cancel("second")

    def test_rejected_transition_raises_no_event(self):
        order = _approved()
        before = len(order._events)
        with pytest.raises(InvalidTransition):
            order.confirm_delivery()
        assert len(order._events) == before

    def test_violations_are_validation_errors(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.confirm_pickup()


class TestAssignmentGuard:
    def test_second_assignment_is_already_assigned(self):
        order = _assigned("courier-1")
        with pytest.raises(AlreadyAssigned) as exc:
            order.assign_courier("courier-2")
        assert exc.value.kind == ErrorKind.ALREADY_ASSIGNED
        assert order.assigned_courier_id == "courier-1"

    def test_cancelled_order_is_already_assigned(self):
        order = _approved()
        order.cancel("gone")
        with pytest.raises(AlreadyAssigned):
            order.assign_courier("courier-1")

    def test_unapproved_order_is_invalid_transition(self):
        order = _make_order()
        with pytest.raises(InvalidTransition):
            order.assign_courier("courier-1")

    def test_pickup_orders_are_never_assigned(self):
        order = _approved(delivery_type=DeliveryType.PICKUP.value)
        assert order.deliveries == []
        with pytest.raises(InvalidTransition):
            order.assign_courier("courier-1")

    def test_seller_delivery_only_goes_to_the_seller(self):
        order = _approved(delivery_type=DeliveryType.SELLER.value)
        with pytest.raises(InvalidTransition):
            order.assign_courier("courier-1")
        order.assign_courier("seller-1")
        assert order.assigned_courier_id == "seller-1"
        assert order.needs_courier_slot is False


class TestCancellationAndFailure:
    def test_cancel_returns_the_courier_to_release(self):
        order = _assigned("courier-7")
        assert order.cancel("seller out of stock") == "courier-7"
        assert order.delivery.status == DeliveryStatus.CANCELLED.value
        assert order.delivery.courier_id == "courier-7"

    def test_cancel_before_assignment_releases_nobody(self):
        order = _approved()
        assert order.cancel("no longer needed") is None

    def test_fail_delivery_marks_failed_and_cancels(self):
        order = _in_transit()
        assert order.fail_delivery("buyer unreachable") == "courier-1"
        assert order.status == OrderStatus.CANCELLED.value
        assert order.delivery.status == DeliveryStatus.FAILED.value
        assert order.delivery.notes == "buyer unreachable"
        event_types = [type(e) for e in order._events[-2:]]
        assert event_types == [DeliveryFailed, OrderCancelled]

    def test_cannot_fail_unassigned_delivery(self):
        order = _approved()
        with pytest.raises(InvalidTransition):
            order.fail_delivery("nothing to fail")


class TestDispatchBookkeeping:
    def test_defer_counts_attempts(self):
        order = _approved()
        order.defer_dispatch()
        order.defer_dispatch()
        assert order.dispatch_attempts == 2

    def test_escalation_happens_once(self):
        order = _approved()
        assert order.escalate_dispatch() is True
        assert order.escalate_dispatch() is False

    def test_assigned_orders_are_not_escalated(self):
        order = _assigned()
        assert order.escalate_dispatch() is False


class TestRating:
    def test_rating_a_delivered_order(self):
        order = _in_transit()
        order.confirm_delivery()
        assert order.record_rating(4) == "courier-1"
        assert order.delivery.courier_rating == 4

    def test_rating_only_once(self):
        order = _in_transit()
        order.confirm_delivery()
        order.record_rating(5)
        with pytest.raises(InvalidTransition):
            order.record_rating(3)

    def test_cannot_rate_undelivered_order(self):
        order = _in_transit()
        with pytest.raises(InvalidTransition):
            order.record_rating(5)
