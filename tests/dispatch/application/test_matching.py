"""Application tests for the matcher, the unassigned-order sweep and nearby lookup."""

from datetime import timedelta

from protean.utils.globals import current_domain

from dispatch.courier.heartbeat import RecordHeartbeat
from dispatch.errors import ErrorKind
from dispatch.matching.matcher import DispatchOrder
from dispatch.matching.nearby import find_nearby_couriers
from dispatch.matching.sweep import SweepUnassignedOrders
from dispatch.order.assignment import mark_assigned
from dispatch.order.order import OrderStatus
from dispatch.settings import override_settings
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import courier_key, serialized_process


def _dispatch(order_id):
    return current_domain.process(DispatchOrder(order_id=order_id), asynchronous=False)


def _sweep(as_of=None):
    return current_domain.process(SweepUnassignedOrders(as_of=as_of), asynchronous=False)


def _go_online(courier_id):
    serialized_process(RecordHeartbeat(courier_id=courier_id, is_online=True), courier_key(courier_id))


class TestDispatch:
    def test_nearest_online_courier_is_assigned(self, online_courier, paid_order, load_order):
        online_courier("far", at=(9.0500, 38.7600))
        online_courier("near", at=(9.0305, 38.7405))
        order_id = paid_order()
        assert load_order(order_id).assigned_courier_id == "near"

    def test_offline_courier_is_not_eligible(self, online_courier, paid_order, load_order):
        online_courier("courier-1", online=False)
        order_id = paid_order()

        order = load_order(order_id)
        assert order.status == OrderStatus.APPROVED.value
        assert order.assigned_courier_id is None
        assert order.dispatch_attempts == 1

        outcome = _dispatch(order_id)
        assert outcome.error == ErrorKind.NO_ELIGIBLE_COURIER
        assert load_order(order_id).dispatch_attempts == 2

    def test_courier_outside_radius_is_skipped(self, online_courier, paid_order, load_order):
        online_courier("courier-1", at=(9.0300, 38.7900), max_delivery_radius_km=5.0)
        order_id = paid_order()
        assert load_order(order_id).assigned_courier_id is None

    def test_busy_courier_is_not_offered_a_second_job(self, online_courier, paid_order, load_order):
        online_courier("courier-1")
        first = paid_order()
        second = paid_order()
        assert load_order(first).assigned_courier_id == "courier-1"
        assert load_order(second).status == OrderStatus.APPROVED.value

    def test_multi_job_capacity(self, online_courier, paid_order, load_order, load_courier):
        override_settings(multi_job_capacity=True)
        online_courier("courier-1", max_active_jobs=2)
        first = paid_order()
        second = paid_order()
        third = paid_order()
        assert load_order(first).assigned_courier_id == "courier-1"
        assert load_order(second).assigned_courier_id == "courier-1"
        assert load_order(third).assigned_courier_id is None
        assert len(load_courier("courier-1").active_jobs) == 2

    def test_dispatching_an_assigned_order_is_already_assigned(self, online_courier, paid_order):
        online_courier()
        order_id = paid_order()
        outcome = _dispatch(order_id)
        assert outcome.error == ErrorKind.ALREADY_ASSIGNED

    def test_unknown_order(self):
        assert _dispatch("no-such-order").error == ErrorKind.NOT_FOUND


class TestDirectAssignment:
    def test_second_assignment_loses(self, online_courier, paid_order, load_order, load_courier):
        online_courier("courier-1")
        online_courier("courier-2", at=(9.0500, 38.7600))
        order_id = paid_order()

        outcome = mark_assigned(order_id, "courier-2")
        assert outcome.error == ErrorKind.ALREADY_ASSIGNED
        assert load_order(order_id).assigned_courier_id == "courier-1"
        assert load_courier("courier-2").active_jobs == []

    def test_courier_at_capacity_is_refused(self, online_courier, paid_order, load_order):
        online_courier("courier-1")
        paid_order()
        waiting = paid_order()
        assert load_order(waiting).assigned_courier_id is None

        outcome = mark_assigned(waiting, "courier-1")
        assert outcome.error == ErrorKind.ALREADY_ASSIGNED
        assert load_order(waiting).status == OrderStatus.APPROVED.value

    def test_unknown_courier(self, paid_order):
        order_id = paid_order()
        assert mark_assigned(order_id, "ghost").error == ErrorKind.NOT_FOUND

    def test_seller_delivery_is_assigned_to_the_seller(self, paid_order, load_order):
        order_id = paid_order(delivery_type="seller")
        outcome = mark_assigned(order_id, "seller-1")
        assert outcome.ok
        assert load_order(order_id).assigned_courier_id == "seller-1"


class TestSweep:
    def test_sweep_assigns_once_a_courier_comes_online(self, online_courier, paid_order, load_order):
        online_courier("courier-1", online=False)
        order_id = paid_order()

        _go_online("courier-1")
        summary = _sweep()
        assert summary["checked"] == 1
        assert summary["assigned"] == 1
        assert load_order(order_id).assigned_courier_id == "courier-1"

    def test_long_waiting_orders_are_escalated_once(self, paid_order, load_order, notifier):
        order_id = paid_order()
        later = utcnow() + timedelta(minutes=16)

        first = _sweep(as_of=later)
        assert first["deferred"] == 1
        assert first["escalated"] == 1
        assert load_order(order_id).dispatch_escalated_at is not None
        [alert] = notifier.sent_to("operators", "dispatch_timed_out")
        assert alert["payload"]["order_id"] == order_id

        second = _sweep(as_of=later + timedelta(minutes=1))
        assert second["escalated"] == 0
        assert load_order(order_id).status == OrderStatus.APPROVED.value

    def test_fresh_orders_are_not_escalated(self, paid_order):
        paid_order()
        assert _sweep()["escalated"] == 0

    def test_sweep_ignores_pickup_orders(self, paid_order):
        paid_order(delivery_type="pickup")
        assert _sweep()["checked"] == 0


class TestNearby:
    def test_lists_couriers_nearest_first(self, online_courier):
        online_courier("far", at=(9.0500, 38.7600))
        online_courier("near", at=(9.0305, 38.7405))
        outcome = find_nearby_couriers(9.0300, 38.7400)
        assert [c["courier_id"] for c in outcome.data["couriers"]] == ["near", "far"]
        assert outcome.data["total"] == 2

    def test_busy_couriers_only_on_request(self, online_courier, paid_order):
        online_courier("courier-1")
        paid_order()
        assert find_nearby_couriers(9.0300, 38.7400).data["total"] == 0
        assert find_nearby_couriers(9.0300, 38.7400, include_busy=True).data["total"] == 1

    def test_radius_limits_the_search(self, online_courier):
        online_courier("far", at=(9.0500, 38.7600))
        assert find_nearby_couriers(9.0300, 38.7400, radius_km=1.0).data["total"] == 0
