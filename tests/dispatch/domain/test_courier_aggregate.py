"""Tests for the Courier aggregate: heartbeats, capacity slots and rating."""

from datetime import UTC, datetime, timedelta

import pytest
from dispatch.courier.courier import Courier
from dispatch.courier.events import CourierLocationUpdated, CourierSlotReleased, CourierSlotReserved
from dispatch.errors import CourierAtCapacity
from dispatch.shared.payout_account import PayoutAccount
from protean.exceptions import ValidationError

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _courier(**overrides):
    kwargs = {"account_id": "courier-1", "display_name": "Abebe"}
    kwargs.update(overrides)
    return Courier.register(**kwargs)


class TestRegistration:
    def test_identity_comes_from_the_account(self):
        courier = _courier()
        assert str(courier.id) == "courier-1"
        assert courier.is_online is False
        assert courier.active_jobs == []
        assert courier.max_delivery_radius_km == 10.0

    def test_custom_radius_and_capacity(self):
        courier = _courier(max_delivery_radius_km=4.0, max_active_jobs=3)
        assert courier.max_delivery_radius_km == 4.0
        assert courier.max_active_jobs == 3


class TestHeartbeat:
    def test_heartbeat_sets_location_and_availability(self):
        courier = _courier()
        assert courier.record_heartbeat(T0, latitude=9.03, longitude=38.74, is_online=True) is True
        assert courier.is_online is True
        assert courier.location.latitude == 9.03
        assert courier.last_location_update == T0
        assert isinstance(courier._events[-1], CourierLocationUpdated)

    def test_older_heartbeat_is_ignored(self):
        courier = _courier()
        courier.record_heartbeat(T0, latitude=9.03, longitude=38.74, is_online=True)
        applied = courier.record_heartbeat(
            T0 - timedelta(seconds=30), latitude=8.0, longitude=38.0, is_online=False
        )
        assert applied is False
        assert courier.is_online is True
        assert courier.location.latitude == 9.03

    def test_same_timestamp_is_ignored(self):
        courier = _courier()
        courier.record_heartbeat(T0, is_online=True)
        assert courier.record_heartbeat(T0, is_online=False) is False
        assert courier.is_online is True

    def test_availability_only_heartbeat_keeps_location(self):
        courier = _courier()
        courier.record_heartbeat(T0, latitude=9.03, longitude=38.74, is_online=True)
        courier.record_heartbeat(T0 + timedelta(minutes=1), is_online=False)
        assert courier.is_online is False
        assert courier.location.longitude == 38.74


class TestCapacity:
    def test_single_job_policy_allows_one_slot(self):
        courier = _courier(max_active_jobs=3)
        courier.reserve_slot("order-1", multi_job_capacity=False)
        assert courier.has_free_slot(False) is False
        with pytest.raises(CourierAtCapacity):
            courier.reserve_slot("order-2", multi_job_capacity=False)

    def test_multi_job_policy_uses_max_active_jobs(self):
        courier = _courier(max_active_jobs=2)
        courier.reserve_slot("order-1", multi_job_capacity=True)
        courier.reserve_slot("order-2", multi_job_capacity=True)
        assert courier.active_jobs == ["order-1", "order-2"]
        with pytest.raises(CourierAtCapacity):
            courier.reserve_slot("order-3", multi_job_capacity=True)

    def test_reserving_the_same_order_twice_is_a_no_op(self):
        courier = _courier()
        courier.reserve_slot("order-1", multi_job_capacity=False)
        courier.reserve_slot("order-1", multi_job_capacity=False)
        assert courier.active_jobs == ["order-1"]
        assert sum(isinstance(e, CourierSlotReserved) for e in courier._events) == 1

    def test_release_after_completion_counts_the_delivery(self):
        courier = _courier()
        courier.reserve_slot("order-1", multi_job_capacity=False)
        assert courier.release_slot("order-1", completed=True) is True
        assert courier.active_jobs == []
        assert courier.total_deliveries == 1
        assert isinstance(courier._events[-1], CourierSlotReleased)

    def test_release_after_cancellation_does_not_count(self):
        courier = _courier()
        courier.reserve_slot("order-1", multi_job_capacity=False)
        courier.release_slot("order-1")
        assert courier.total_deliveries == 0

    def test_releasing_an_unheld_slot_returns_false(self):
        courier = _courier()
        assert courier.release_slot("order-9") is False

    def test_capacity_cannot_drop_below_held_jobs(self):
        courier = _courier(max_active_jobs=2)
        courier.reserve_slot("order-1", multi_job_capacity=True)
        courier.reserve_slot("order-2", multi_job_capacity=True)
        with pytest.raises(ValidationError):
            courier.update_settings(max_active_jobs=1)


class TestRating:
    def test_first_score_replaces_the_default(self):
        courier = _courier()
        courier.rate("order-1", 3)
        assert courier.rating == 3.0
        assert courier.rating_count == 1

    def test_scores_are_averaged(self):
        courier = _courier()
        courier.rate("order-1", 5)
        courier.rate("order-2", 4)
        assert courier.rating == 4.5

    @pytest.mark.parametrize("score", [0, 6])
    def test_out_of_range_score_is_rejected(self, score):
        with pytest.raises(ValidationError):
            _courier().rate("order-1", score)


class TestPayoutAccount:
    def test_bank_account(self):
        account = PayoutAccount(bank_name="CBE", account_name="Abebe", account_number="1000123")
        assert account.channel == "bank"

    def test_mobile_money_wallet(self):
        account = PayoutAccount(mobile_money_number="+251911000000")
        assert account.channel == "mobile_money"

    def test_account_needs_a_destination(self):
        with pytest.raises(ValidationError):
            PayoutAccount(account_name="Abebe")

    def test_courier_keeps_the_account(self):
        courier = _courier()
        courier.update_payout_account(PayoutAccount(mobile_money_number="+251911000000"))
        assert courier.payout_account.mobile_money_number == "+251911000000"
