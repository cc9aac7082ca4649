"""Earnings recording — one entry per payee when an order is delivered.

The seller is credited the order amount less the seller commission. For
platform deliveries the courier is credited the delivery fee less the courier
commission, plus the completion bonus on every N-th delivery. Recording is
idempotent per (order, payee type), so a redelivered event never credits a
payee twice.
"""

from datetime import timedelta
from decimal import Decimal

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import ErrorKind, Outcome
from dispatch.ledger.earnings import EarningsEntry, PayeeType
from dispatch.ledger.fees import courier_split, delivery_fee, seller_split
from dispatch.ledger.queries import entries_for_order
from dispatch.order.order import DeliveryType, Order, OrderStatus
from dispatch.settings import get_settings
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import payee_key, serialized_process

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="EarningsEntry")
class RecordEarnings:
    order_id = Identifier(required=True)
    as_of = DateTime()


def record_earnings(order_id: str, as_of=None) -> Outcome:
    """Run RecordEarnings under the locks of everyone the order pays."""
    order = current_domain.repository_for(Order).get(str(order_id))
    keys = [payee_key(order.seller_id)]
    if order.delivery_type == DeliveryType.PLATFORM.value and order.assigned_courier_id:
        keys.append(payee_key(order.assigned_courier_id))
    return serialized_process(RecordEarnings(order_id=str(order_id), as_of=as_of), *keys)


@dispatch.command_handler(part_of=EarningsEntry)
class RecordingHandler:
    @handle(RecordEarnings)
    def record(self, command):
        settings = get_settings()
        try:
            order = current_domain.repository_for(Order).get(command.order_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Order", command.order_id)
        if order.status != OrderStatus.DELIVERED.value:
            return Outcome.failure(
                ErrorKind.INVALID_TRANSITION,
                f"Order {order.id} is {order.status}, earnings are recorded on delivery",
                order_id=str(order.id),
            )

        delivered_at = order.delivered_at or command.as_of or utcnow()
        now = command.as_of or utcnow()
        already = {e.payee_type for e in entries_for_order(order.id)}
        repo = current_domain.repository_for(EarningsEntry)
        delivery = order.delivery
        recorded = []

        if PayeeType.SELLER.value not in already:
            entry = EarningsEntry.record(
                payee_id=order.seller_id,
                payee_type=PayeeType.SELLER,
                order_id=order.id,
                amounts=seller_split(order.amount, settings),
                available_date=delivered_at + timedelta(days=settings.seller_holding_days),
                delivery_id=delivery.id if delivery else None,
                now=now,
            )
            repo.add(entry)
            recorded.append(entry)

        if order.delivery_type == DeliveryType.PLATFORM.value and PayeeType.COURIER.value not in already:
            distance = delivery.distance_km if delivery else None
            fee = (
                Decimal(str(order.delivery_fee))
                if order.delivery_fee is not None
                else delivery_fee(distance, settings)
            )
            courier = current_domain.repository_for(Courier).get(order.assigned_courier_id)
            entry = EarningsEntry.record(
                payee_id=courier.id,
                payee_type=PayeeType.COURIER,
                order_id=order.id,
                amounts=courier_split(fee, courier.total_deliveries or 0, settings),
                available_date=delivered_at + timedelta(days=settings.courier_holding_days),
                delivery_id=delivery.id if delivery else None,
                distance_km=distance,
                now=now,
            )
            repo.add(entry)
            recorded.append(entry)

        for entry in recorded:
            logger.info(
                "Earnings recorded",
                order_id=str(order.id),
                payee_id=entry.payee_id,
                payee_type=entry.payee_type,
                gross=entry.gross_amount,
                commission=entry.commission_amount,
                bonus=entry.bonus_amount,
                net=entry.net_amount,
            )
        return Outcome.success(order_id=str(order.id), entry_ids=[str(e.id) for e in recorded])

