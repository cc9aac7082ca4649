from datetime import UTC, datetime

import pytest

from dispatch.notifier import reset_notifier
from dispatch.settings import reset_settings

SELLER_AT = (9.0300, 38.7400)
BUYER_AT = (9.0100, 38.7600)
NEAR_SELLER = (9.0310, 38.7410)


@pytest.fixture(autouse=True)
def _ctx(dispatch_bed):
    with dispatch_bed.domain_context():
        yield

        # Clear all databases and drain the event store
        for _, provider in dispatch_bed.domain.providers.items():
            provider._data_reset()
        dispatch_bed.domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _fresh_collaborators():
    """Each test starts with default settings and an empty notifier."""
    reset_settings()
    reset_notifier()
    yield
    reset_settings()
    reset_notifier()


@pytest.fixture()
def now():
    return datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture()
def notifier():
    from dispatch.notifier import get_notifier

    return get_notifier()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def online_courier():
    """Register a courier and report it online at a location."""
    from dispatch.courier.heartbeat import RecordHeartbeat
    from dispatch.courier.registration import RegisterCourier
    from dispatch.utils.locks import courier_key, serialized_process

    def _online_courier(courier_id="courier-1", at=NEAR_SELLER, online=True, **registration):
        serialized_process(
            RegisterCourier(courier_id=courier_id, display_name=courier_id.title(), **registration),
            courier_key(courier_id),
        )
        serialized_process(
            RecordHeartbeat(courier_id=courier_id, latitude=at[0], longitude=at[1], is_online=online),
            courier_key(courier_id),
        )
        return courier_id

    return _online_courier


@pytest.fixture()
def placed_order():
    """Register an order handed over by the buyer transaction."""
    from protean.utils.globals import current_domain

    from dispatch.order.placement import PlaceOrder

    def _placed_order(**overrides):
        fields = {
            "buyer_id": "buyer-1",
            "seller_id": "seller-1",
            "total_amount": 1000.0,
            "seller_latitude": SELLER_AT[0],
            "seller_longitude": SELLER_AT[1],
            "buyer_latitude": BUYER_AT[0],
            "buyer_longitude": BUYER_AT[1],
        }
        fields.update(overrides)
        outcome = current_domain.process(PlaceOrder(**fields), asynchronous=False)
        return outcome.data["order_id"]

    return _placed_order


@pytest.fixture()
def paid_order(placed_order):
    """Place an order and confirm its payment, which approves and dispatches it."""
    from dispatch.order.locking import process_for_order
    from dispatch.order.payment import ConfirmPayment

    def _paid_order(**overrides):
        order_id = placed_order(**overrides)
        process_for_order(ConfirmPayment(order_id=order_id, payment_status="Paid"), order_id)
        return order_id

    return _paid_order


@pytest.fixture()
def load_order():
    from protean.utils.globals import current_domain

    from dispatch.order.order import Order

    return lambda order_id: current_domain.repository_for(Order).get(order_id)


@pytest.fixture()
def load_courier():
    from protean.utils.globals import current_domain

    from dispatch.courier.courier import Courier

    return lambda courier_id: current_domain.repository_for(Courier).get(courier_id)


@pytest.fixture()
def latest_secret(notifier):
    """The most recent code secret handed to a recipient for a step."""

    def _latest_secret(recipient_id, step):
        return notifier.sent_to(recipient_id, f"{step}_code")[-1]["payload"]["secret"]

    return _latest_secret


@pytest.fixture()
def delivered_order(online_courier, paid_order, latest_secret):
    """Take a platform order all the way to Delivered."""
    from dispatch.order.handover import confirm_delivery
    from dispatch.order.pickup import confirm_pickup

    def _delivered_order(courier_id="courier-1", **overrides):
        online_courier(courier_id)
        order_id = paid_order(**overrides)
        seller_id = overrides.get("seller_id", "seller-1")
        buyer_id = overrides.get("buyer_id", "buyer-1")
        assert confirm_pickup(order_id, latest_secret(seller_id, "pickup")).ok
        assert confirm_delivery(order_id, latest_secret(buyer_id, "delivery")).ok
        return order_id

    return _delivered_order
