"""Courier domain events."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="Courier")
class CourierRegistered:
    __version__ = 1

    courier_id = Identifier(required=True)
    display_name = String(required=True)
    max_delivery_radius_km = Float(required=True)
    max_active_jobs = Integer(required=True)
    registered_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierSettingsUpdated:
    __version__ = 1

    courier_id = Identifier(required=True)
    max_delivery_radius_km = Float(required=True)
    max_active_jobs = Integer(required=True)
    updated_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierLocationUpdated:
    """A heartbeat moved the courier or changed its availability."""

    __version__ = 1

    courier_id = Identifier(required=True)
    latitude = Float()
    longitude = Float()
    is_online = Boolean(required=True)
    reported_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierSlotReserved:
    __version__ = 1

    courier_id = Identifier(required=True)
    order_id = Identifier(required=True)
    active_jobs = Integer(required=True)
    reserved_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierSlotReleased:
    __version__ = 1

    courier_id = Identifier(required=True)
    order_id = Identifier(required=True)
    active_jobs = Integer(required=True)
    completed = Boolean(default=False)
    total_deliveries = Integer(required=True)
    released_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierRated:
    __version__ = 1

    courier_id = Identifier(required=True)
    order_id = Identifier(required=True)
    score = Integer(required=True)
    rating = Float(required=True)
    rating_count = Integer(required=True)
    rated_at = DateTime(required=True)


@dispatch.event(part_of="Courier")
class CourierPayoutAccountUpdated:
    __version__ = 1

    courier_id = Identifier(required=True)
    bank_name = String()
    mobile_money_number = String()
    updated_at = DateTime(required=True)
