"""GeoPoint value object and great-circle distance helpers."""

from geopy.distance import great_circle
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Float

from dispatch.domain import dispatch


@dispatch.value_object
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    latitude: Float(min_value=-90.0, max_value=90.0)
    longitude: Float(min_value=-180.0, max_value=180.0)

    @invariant.post
    def both_coordinates_required(self):
        if self.latitude is None or self.longitude is None:
            raise ValidationError({"coordinates": ["Both latitude and longitude are required"]})


def distance_km(origin: GeoPoint | None, destination: GeoPoint | None) -> float | None:
    """Great-circle distance in kilometres, or None when either point is unknown."""
    if origin is None or destination is None:
        return None
    return great_circle(
        (origin.latitude, origin.longitude),
        (destination.latitude, destination.longitude),
    ).km


def point(latitude: float | None, longitude: float | None) -> GeoPoint | None:
    if latitude is None or longitude is None:
        return None
    return GeoPoint(latitude=latitude, longitude=longitude)
