"""Courier heartbeat ingestion — command and handler.

Heartbeats take only the courier's own lock and never touch orders, so a
stream of location updates cannot hold up dispatch decisions for other
orders.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Float, Identifier
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import Outcome
from dispatch.utils.clock import utcnow

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Courier")
class RecordHeartbeat:
    """Location and/or availability reported by the courier's device."""

    courier_id = Identifier(required=True)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)
    is_online = Boolean()
    reported_at = DateTime()  # Device timestamp; defaults to receipt time


@dispatch.command_handler(part_of=Courier)
class HeartbeatHandler:
    @handle(RecordHeartbeat)
    def record_heartbeat(self, command):
        repo = current_domain.repository_for(Courier)
        try:
            courier = repo.get(command.courier_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Courier", command.courier_id)
        reported_at = command.reported_at or utcnow()

        applied = courier.record_heartbeat(
            reported_at=reported_at,
            latitude=command.latitude,
            longitude=command.longitude,
            is_online=command.is_online,
        )
        if not applied:
            logger.debug(
                "Stale heartbeat ignored",
                courier_id=str(courier.id),
                reported_at=str(reported_at),
                last_location_update=str(courier.last_location_update),
            )
            return Outcome.success(courier_id=str(courier.id), applied=False)

        repo.add(courier)
        return Outcome.success(courier_id=str(courier.id), applied=True, is_online=courier.is_online)
