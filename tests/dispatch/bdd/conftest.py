"""Shared BDD fixtures and step definitions for the dispatch domain."""

from datetime import timedelta

import pytest
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then

from dispatch.errors import ErrorKind, VerificationFailure
from dispatch.ledger.release import ReleaseMaturedEarnings
from dispatch.ledger.summary import earnings_summary
from dispatch.utils.clock import utcnow


@pytest.fixture()
def result():
    """Container for the outcome of the last action."""
    return {"outcome": None}


@pytest.fixture()
def clock():
    """Reference time for scenarios that move forward in time."""
    return {"start": utcnow()}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an online courier "{courier_id}" near the seller'))
def courier_near_seller(online_courier, courier_id):
    online_courier(courier_id)


@given(parsers.cfparse('an offline courier "{courier_id}"'))
def offline_courier(online_courier, courier_id):
    online_courier(courier_id, online=False)


@given("a paid platform order", target_fixture="order_id")
def paid_platform_order(paid_order):
    return paid_order()


@given("the courier has collected the goods")
def goods_collected(order_id, latest_secret):
    from dispatch.order.pickup import confirm_pickup

    assert confirm_pickup(order_id, latest_secret("seller-1", "pickup")).ok


@given(parsers.cfparse('"{payee_id}" has {count:d} delivered orders with released earnings'))
def released_earnings(delivered_order, payee_id, count):
    for number in range(1, count + 1):
        delivered_order(courier_id=f"courier-{number}", seller_id=payee_id)
    current_domain.process(
        ReleaseMaturedEarnings(as_of=utcnow() + timedelta(days=8)),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(load_order, order_id, status):
    assert load_order(order_id).status == status


@then(parsers.cfparse('the delivery status is "{status}"'))
def delivery_status_is(load_order, order_id, status):
    assert load_order(order_id).delivery.status == status


@then(parsers.cfparse('the order is assigned to "{courier_id}"'))
def order_assigned_to(load_order, order_id, courier_id):
    assert load_order(order_id).assigned_courier_id == courier_id


@then("the action succeeds")
def action_succeeds(result):
    outcome = result["outcome"]
    assert outcome.ok, f"Expected success, got {outcome.error}: {outcome.message}"


@then(parsers.cfparse('the action fails with "{error}"'))
def action_fails_with(result, error):
    assert result["outcome"] is not None, "No action was attempted"
    assert result["outcome"].error == ErrorKind(error)


@then(parsers.cfparse('the failure reason is "{reason}"'))
def failure_reason_is(result, reason):
    assert result["outcome"].reason == VerificationFailure(reason)


@then(parsers.cfparse('"{recipient_id}" received a "{topic}" notification'))
def notification_received(notifier, recipient_id, topic):
    assert notifier.sent_to(recipient_id, topic), f"No {topic} notification for {recipient_id}"


@then(parsers.cfparse('"{payee_id}" has {amount:f} {status} in earnings'))
def earnings_in_status(payee_id, amount, status):
    summary = earnings_summary(payee_id)
    if status == "payable":
        assert summary["payable"] == amount
    else:
        assert summary["by_status"][status] == amount
