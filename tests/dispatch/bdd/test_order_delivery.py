"""BDD tests for the order delivery flow."""

from protean.utils.globals import current_domain
from pytest_bdd import parsers, scenarios, then, when

from dispatch.matching.matcher import DispatchOrder
from dispatch.order.cancellation import cancel_order
from dispatch.order.handover import confirm_delivery
from dispatch.order.pickup import confirm_pickup

scenarios("features/order_delivery.feature")


@when("the courier presents the seller's pickup code")
def present_seller_pickup_code(order_id, latest_secret, result):
    result["outcome"] = confirm_pickup(order_id, latest_secret("seller-1", "pickup"))


@when("the courier presents the buyer's delivery code")
def present_buyer_delivery_code(order_id, latest_secret, result):
    result["outcome"] = confirm_delivery(order_id, latest_secret("buyer-1", "delivery"))


@when(parsers.cfparse('the courier presents the pickup code "{secret}"'))
def present_pickup_code(order_id, secret, result):
    result["outcome"] = confirm_pickup(order_id, secret)


@when(parsers.cfparse('the courier presents the delivery code "{secret}"'))
def present_delivery_code(order_id, secret, result):
    result["outcome"] = confirm_delivery(order_id, secret)


@when("the order is dispatched again")
def dispatch_again(order_id, result):
    result["outcome"] = current_domain.process(DispatchOrder(order_id=order_id), asynchronous=False)


@when(parsers.cfparse('the order is cancelled because "{reason}"'))
def cancel(order_id, reason, result):
    result["outcome"] = cancel_order(order_id, reason)


@then(parsers.cfparse('courier "{courier_id}" has no active jobs'))
def courier_is_free(load_courier, courier_id):
    assert load_courier(courier_id).active_jobs == []
