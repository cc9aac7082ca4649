"""Dispatch matcher — commands and handler that put a courier on an order.

Matching is read-eligible-set → pick the top candidate → conditional assign.
The candidate read takes no locks; ``MarkAssigned`` re-checks the order and the
courier's capacity under their locks. When the assign loses a race
(``AlreadyAssigned``) or the courier is busy, the matcher re-reads the order
and re-evaluates without that courier, up to ``max_assignment_attempts``
times. Finding nobody is not an error: the order stays Approved, a
DispatchDeferred event is recorded, and the periodic sweep tries again.
"""

from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, ErrorKind, Outcome
from dispatch.matching.eligibility import rank_candidates
from dispatch.order.assignment import mark_assigned
from dispatch.order.order import DeliveryType, Order, OrderStatus
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import LockBusy, order_key, serialized_process

logger = structlog.get_logger(__name__)


def online_couriers() -> list[Courier]:
    repo = current_domain.repository_for(Courier)
    return list(repo._dao.query.filter(is_online=True).all().items)


def _not_dispatchable(order: Order) -> Outcome | None:
    current = OrderStatus(order.status)
    if order.assigned_courier_id or current in (OrderStatus.ASSIGNED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
        return Outcome.failure(
            ErrorKind.ALREADY_ASSIGNED,
            f"Order {order.id} already has a courier",
            order_id=str(order.id),
            courier_id=str(order.assigned_courier_id) if order.assigned_courier_id else None,
        )
    if current == OrderStatus.CANCELLED:
        return Outcome.failure(ErrorKind.ALREADY_ASSIGNED, f"Order {order.id} was cancelled", order_id=str(order.id))
    if current != OrderStatus.APPROVED:
        return Outcome.failure(
            ErrorKind.INVALID_TRANSITION,
            f"Order {order.id} is {current.value}, not ready for dispatch",
            order_id=str(order.id),
        )
    if order.delivery_type != DeliveryType.PLATFORM.value:
        return Outcome.failure(
            ErrorKind.INVALID_TRANSITION,
            f"Order {order.id} is not a platform delivery",
            order_id=str(order.id),
        )
    return None


def dispatch_order(order_id: str, now: datetime | None = None) -> Outcome:
    """Try to assign the best eligible courier to an approved platform order."""
    settings = get_settings()
    now = now or utcnow()
    order_id = str(order_id)
    repo = current_domain.repository_for(Order)
    excluded: set[str] = set()

    for attempt in range(1, settings.max_assignment_attempts + 1):
        try:
            # Read past the unit of work so every round sees committed state
            order = repo._dao.get(order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", order_id)

        stop = _not_dispatchable(order)
        if stop is not None:
            return stop

        candidates = rank_candidates(
            online_couriers(),
            order.seller_location,
            settings.multi_job_capacity,
            settings.dispatch_tie_breaks,
            exclude=excluded,
        )
        if not candidates:
            break

        top = candidates[0]
        try:
            outcome = mark_assigned(order_id, top.courier_id, as_of=now)
        except LockBusy as exc:
            logger.info("Candidate busy, re-evaluating", order_id=order_id, courier_id=top.courier_id, key=exc.key)
            excluded.add(top.courier_id)
            continue

        if outcome.ok:
            logger.info(
                "Order dispatched",
                order_id=order_id,
                courier_id=top.courier_id,
                distance_km=round(top.distance_km, 3),
                attempt=attempt,
            )
            return Outcome.success(**outcome.data, distance_km=top.distance_km, attempts=attempt)
        if outcome.error != ErrorKind.ALREADY_ASSIGNED:
            return outcome

        # Lost the race for this courier (or for the order); the re-read decides which
        logger.info("Assignment conflict, re-evaluating", order_id=order_id, courier_id=top.courier_id)
        excluded.add(top.courier_id)

    return _defer(order_id, now)


def _defer(order_id: str, now: datetime) -> Outcome:
    try:
        serialized_process(DeferDispatch(order_id=order_id, as_of=now), order_key(order_id))
    except LockBusy:
        logger.info("Order busy while deferring dispatch", order_id=order_id)
    logger.info("No eligible courier", order_id=order_id)
    return Outcome.failure(ErrorKind.NO_ELIGIBLE_COURIER, "No eligible courier available", order_id=order_id)


@dispatch.command(part_of="Order")
class DispatchOrder:
    """Find and assign a courier for an approved platform order."""

    order_id = Identifier(required=True)
    as_of = DateTime()


@dispatch.command(part_of="Order")
class DeferDispatch:
    order_id = Identifier(required=True)
    as_of = DateTime()


@dispatch.command(part_of="Order")
class EscalateDispatch:
    """Tell operators an order has waited too long for a courier."""

    order_id = Identifier(required=True)
    as_of = DateTime()


@dispatch.command_handler(part_of=Order)
class MatcherHandler:
    @handle(DispatchOrder)
    def dispatch_order(self, command):
        return dispatch_order(command.order_id, now=command.as_of)

    @handle(DeferDispatch)
    def defer(self, command):
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return False
        try:
            order.defer_dispatch(now=command.as_of)
        except DispatchRuleViolation:
            # Assigned or cancelled since the candidate read; nothing to record
            return False
        repo.add(order)
        return True

    @handle(EscalateDispatch)
    def escalate(self, command):
        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(command.order_id)
        except ObjectNotFoundError:
            return False
        if not order.escalate_dispatch(now=command.as_of):
            return False
        repo.add(order)
        logger.warning(
            "Dispatch timed out",
            order_id=str(order.id),
            waited_minutes=order.waiting_minutes(command.as_of or utcnow()),
            attempts=order.dispatch_attempts,
        )
        return True
