"""Tests for courier eligibility filtering and ranking."""

from datetime import UTC, datetime, timedelta

from dispatch.courier.courier import Courier
from dispatch.matching.eligibility import candidate_for, rank_candidates
from dispatch.settings import TIE_BREAKS
from dispatch.shared.geo import GeoPoint

PICKUP = GeoPoint(latitude=9.0300, longitude=38.7400)
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _courier(courier_id, latitude=9.0310, longitude=38.7410, online=True, seen=T0, radius=10.0, rating=None):
    courier = Courier.register(account_id=courier_id, display_name=courier_id, max_delivery_radius_km=radius)
    courier.record_heartbeat(seen, latitude=latitude, longitude=longitude, is_online=online)
    if rating is not None:
        courier.rate("order-x", rating)
    return courier


class TestEligibility:
    def test_online_nearby_courier_is_eligible(self):
        candidate = candidate_for(_courier("c1"), PICKUP, multi_job_capacity=False)
        assert candidate is not None
        assert candidate.distance_km < 1

    def test_offline_courier_is_not_eligible(self):
        assert candidate_for(_courier("c1", online=False), PICKUP, False) is None

    def test_courier_without_location_is_not_eligible(self):
        courier = Courier.register(account_id="c1", display_name="c1")
        courier.record_heartbeat(T0, is_online=True)
        assert candidate_for(courier, PICKUP, False) is None

    def test_courier_outside_its_radius_is_not_eligible(self):
        far = _courier("c1", latitude=9.0300, longitude=38.7900, radius=5.0)
        assert candidate_for(far, PICKUP, False) is None

    def test_busy_courier_is_not_eligible(self):
        courier = _courier("c1")
        courier.reserve_slot("order-1", multi_job_capacity=False)
        assert candidate_for(courier, PICKUP, False) is None
        assert candidate_for(courier, PICKUP, False, require_free_slot=False) is not None

    def test_unknown_pickup_point_matches_nobody(self):
        assert candidate_for(_courier("c1"), None, False) is None


class TestRanking:
    def test_nearest_first(self):
        near = _courier("near", latitude=9.0301, longitude=38.7401)
        far = _courier("far", latitude=9.0500, longitude=38.7600)
        ranked = rank_candidates([far, near], PICKUP, False, TIE_BREAKS)
        assert [c.courier_id for c in ranked] == ["near", "far"]

    def test_equal_distance_prefers_higher_rating(self):
        low = _courier("low", rating=3)
        high = _courier("high", rating=5)
        ranked = rank_candidates([low, high], PICKUP, False, ("rating",))
        assert [c.courier_id for c in ranked] == ["high", "low"]

    def test_equal_distance_prefers_fewer_jobs_when_multi_job(self):
        busy = Courier.register(account_id="busy", display_name="busy", max_active_jobs=3)
        busy.record_heartbeat(T0, latitude=9.0310, longitude=38.7410, is_online=True)
        busy.reserve_slot("order-1", multi_job_capacity=True)
        idle = _courier("idle")
        ranked = rank_candidates([busy, idle], PICKUP, True, ("active_jobs",))
        assert [c.courier_id for c in ranked] == ["idle", "busy"]

    def test_equal_distance_prefers_most_recent_location(self):
        stale = _courier("stale", seen=T0)
        fresh = _courier("fresh", seen=T0 + timedelta(minutes=5))
        ranked = rank_candidates([stale, fresh], PICKUP, False, ("freshness",))
        assert [c.courier_id for c in ranked] == ["fresh", "stale"]

    def test_excluded_couriers_are_skipped(self):
        ranked = rank_candidates([_courier("c1"), _courier("c2")], PICKUP, False, TIE_BREAKS, exclude=["c1"])
        assert [c.courier_id for c in ranked] == ["c2"]

    def test_search_radius_narrows_the_courier_radius(self):
        courier = _courier("c1", latitude=9.0300, longitude=38.7600)
        assert rank_candidates([courier], PICKUP, False, TIE_BREAKS, radius_km=1.0) == []
        assert len(rank_candidates([courier], PICKUP, False, TIE_BREAKS, radius_km=5.0)) == 1
