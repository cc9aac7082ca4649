"""Courier eligibility and ranking for a pickup point.

Pure functions over courier records; nothing here locks or writes. The
matcher re-checks capacity inside the assignment unit of work, so a ranking
computed from a slightly stale read is safe.

A courier is eligible when it is online, has a known location within its own
delivery radius of the seller, and has a free capacity slot. Eligible couriers
are ranked by ascending distance, then by the configured tie-breaks:

    active_jobs  fewer held jobs first
    rating       higher rating first
    freshness    most recent location update first
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from dispatch.courier.courier import Courier
from dispatch.shared.geo import GeoPoint, distance_km
from dispatch.utils.clock import as_utc


@dataclass(frozen=True)
class Candidate:
    courier_id: str
    distance_km: float
    active_jobs: int
    rating: float
    last_location_update: datetime | None

    def as_dict(self) -> dict:
        return {
            "courier_id": self.courier_id,
            "distance_km": round(self.distance_km, 3),
            "active_jobs": self.active_jobs,
            "rating": self.rating,
            "last_location_update": self.last_location_update,
        }


def _freshness(candidate: Candidate) -> float:
    seen = as_utc(candidate.last_location_update)
    return -seen.timestamp() if seen else float("inf")


_TIE_BREAK_KEYS = {
    "active_jobs": lambda c: c.active_jobs,
    "rating": lambda c: -(c.rating or 0.0),
    "freshness": _freshness,
}


def ranking_key(tie_breaks: Iterable[str]):
    keys = [_TIE_BREAK_KEYS[name] for name in tie_breaks if name in _TIE_BREAK_KEYS]

    def key(candidate: Candidate):
        return (candidate.distance_km, *(k(candidate) for k in keys), candidate.courier_id)

    return key


def candidate_for(
    courier: Courier,
    pickup: GeoPoint | None,
    multi_job_capacity: bool,
    radius_km: float | None = None,
    require_free_slot: bool = True,
) -> Candidate | None:
    """Return the courier as a candidate for the pickup point, or None if ineligible."""
    if not courier.is_online or courier.location is None or pickup is None:
        return None
    if require_free_slot and not courier.has_free_slot(multi_job_capacity):
        return None

    distance = distance_km(pickup, courier.location)
    limit = courier.max_delivery_radius_km if radius_km is None else min(radius_km, courier.max_delivery_radius_km)
    if distance is None or distance > limit:
        return None

    return Candidate(
        courier_id=str(courier.id),
        distance_km=distance,
        active_jobs=len(courier.active_jobs),
        rating=courier.rating if courier.rating is not None else 0.0,
        last_location_update=courier.last_location_update,
    )


def rank_candidates(
    couriers: Iterable[Courier],
    pickup: GeoPoint | None,
    multi_job_capacity: bool,
    tie_breaks: Iterable[str],
    exclude: Iterable[str] = (),
    radius_km: float | None = None,
    require_free_slot: bool = True,
) -> list[Candidate]:
    excluded = {str(c) for c in exclude}
    candidates = []
    for courier in couriers:
        if str(courier.id) in excluded:
            continue
        candidate = candidate_for(courier, pickup, multi_job_capacity, radius_km, require_free_slot)
        if candidate is not None:
            candidates.append(candidate)
    return sorted(candidates, key=ranking_key(tie_breaks))
