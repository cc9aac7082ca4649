"""Courier registration and settings — commands and handler.

Courier identity, display name and phone come from the account service; this
context keeps only what dispatch needs.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import ErrorKind, Outcome

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Courier")
class RegisterCourier:
    courier_id = Identifier(required=True)
    display_name = String(required=True, max_length=255)
    phone = String(max_length=20)
    max_delivery_radius_km = Float(min_value=0.0)
    max_active_jobs = Integer(min_value=1, default=1)
    as_of = DateTime()


@dispatch.command(part_of="Courier")
class UpdateCourierSettings:
    """Operator change to a courier's service radius or job capacity."""

    courier_id = Identifier(required=True)
    max_delivery_radius_km = Float(min_value=0.0)
    max_active_jobs = Integer(min_value=1)


@dispatch.command_handler(part_of=Courier)
class CourierRegistrationHandler:
    @handle(RegisterCourier)
    def register(self, command):
        repo = current_domain.repository_for(Courier)
        try:
            repo.get(command.courier_id)
        except ObjectNotFoundError:
            pass
        else:
            return Outcome.failure(ErrorKind.INVALID_TRANSITION, f"Courier {command.courier_id} is already registered")

        courier = Courier.register(
            account_id=command.courier_id,
            display_name=command.display_name,
            phone=command.phone,
            max_delivery_radius_km=command.max_delivery_radius_km,
            max_active_jobs=command.max_active_jobs,
            now=command.as_of,
        )
        repo.add(courier)
        logger.info("Courier registered", courier_id=str(courier.id))
        return Outcome.success(courier_id=str(courier.id))

    @handle(UpdateCourierSettings)
    def update_settings(self, command):
        repo = current_domain.repository_for(Courier)
        try:
            courier = repo.get(command.courier_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Courier", command.courier_id)
        courier.update_settings(
            max_delivery_radius_km=command.max_delivery_radius_km,
            max_active_jobs=command.max_active_jobs,
        )
        repo.add(courier)
        return Outcome.success(
            courier_id=str(courier.id),
            max_delivery_radius_km=courier.max_delivery_radius_km,
            max_active_jobs=courier.max_active_jobs,
        )
