"""Order placement — command and handler.

Registers an order handed over by the buyer transaction. From here on the
order changes only through the state-machine commands.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.errors import ErrorKind, Outcome
from dispatch.order.order import DeliveryType, Order, OrderType
from dispatch.shared.geo import point

logger = structlog.get_logger(__name__)


@dispatch.command(part_of="Order")
class PlaceOrder:
    order_id = Identifier()  # Optional: keep the buyer transaction's id
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    total_amount = Float(required=True, min_value=0.0)
    order_type = String(choices=OrderType, default=OrderType.REGULAR.value)
    delivery_type = String(choices=DeliveryType, default=DeliveryType.PLATFORM.value)
    seller_latitude = Float(min_value=-90.0, max_value=90.0)
    seller_longitude = Float(min_value=-180.0, max_value=180.0)
    buyer_latitude = Float(min_value=-90.0, max_value=90.0)
    buyer_longitude = Float(min_value=-180.0, max_value=180.0)
    delivery_fee = Float(min_value=0.0)
    as_of = DateTime()


@dispatch.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        repo = current_domain.repository_for(Order)
        if command.order_id:
            try:
                repo.get(command.order_id)
            except ObjectNotFoundError:
                pass
            else:
                return Outcome.failure(ErrorKind.INVALID_TRANSITION, f"Order {command.order_id} already exists")

        order = Order.place(
            order_id=command.order_id,
            buyer_id=command.buyer_id,
            seller_id=command.seller_id,
            total_amount=command.total_amount,
            order_type=command.order_type,
            delivery_type=command.delivery_type,
            seller_location=point(command.seller_latitude, command.seller_longitude),
            buyer_location=point(command.buyer_latitude, command.buyer_longitude),
            delivery_fee=command.delivery_fee,
            now=command.as_of,
        )
        repo.add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            delivery_type=order.delivery_type,
            total_amount=order.total_amount,
        )
        return Outcome.success(order_id=str(order.id), status=order.status)
