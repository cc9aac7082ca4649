"""Nearby courier lookup for operator tooling.

Lists online couriers around a point, ranked the way the matcher ranks them.
Busy couriers can be included so operators see the whole neighbourhood.
"""

from dispatch.errors import Outcome
from dispatch.matching.eligibility import rank_candidates
from dispatch.matching.matcher import online_couriers
from dispatch.settings import get_settings
from dispatch.shared.geo import GeoPoint


def find_nearby_couriers(
    latitude: float,
    longitude: float,
    radius_km: float | None = None,
    include_busy: bool = False,
    limit: int = 20,
) -> Outcome:
    settings = get_settings()
    candidates = rank_candidates(
        online_couriers(),
        GeoPoint(latitude=latitude, longitude=longitude),
        settings.multi_job_capacity,
        settings.dispatch_tie_breaks,
        radius_km=radius_km if radius_km is not None else settings.default_radius_km,
        require_free_slot=not include_busy,
    )
    return Outcome.success(couriers=[c.as_dict() for c in candidates[:limit]], total=len(candidates))
