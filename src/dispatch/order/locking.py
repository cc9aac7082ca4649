"""Lock resolution for order commands.

Commands that touch an order's courier or verification code must hold those
locks too, but which courier and delivery an order points at is only known by
reading the order. The keys are resolved from an unlocked read, the locks are
taken, and the read is repeated under the locks; if the order changed in
between the keys are resolved again.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dispatch.order.order import Order
from dispatch.utils.locks import LockBusy, code_key, courier_key, locks, order_key

logger = structlog.get_logger(__name__)

MAX_RESOLVE_ROUNDS = 3


def _keys_for(order_id: str, with_courier: bool, code_steps: tuple[str, ...]) -> set[str]:
    keys = {order_key(order_id)}
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        return keys
    if with_courier and order.assigned_courier_id:
        keys.add(courier_key(order.assigned_courier_id))
    if order.delivery is not None:
        keys.update(code_key(order.delivery.id, step) for step in code_steps)
    return keys


def process_for_order(command, order_id: str, with_courier: bool = False, code_steps: tuple[str, ...] = ()):
    """Process an order command holding the order lock and the locks it implies.

    Raises ``LockBusy`` when a lock is contended past its timeout or the keys
    keep moving.
    """
    order_id = str(order_id)
    for _ in range(MAX_RESOLVE_ROUNDS):
        keys = _keys_for(order_id, with_courier, code_steps)
        with locks.hold_all(keys):
            if _keys_for(order_id, with_courier, code_steps) == keys:
                return current_domain.process(command, asynchronous=False)
        logger.info("Order changed while locking, resolving again", order_id=order_id)
    raise LockBusy(order_key(order_id))
