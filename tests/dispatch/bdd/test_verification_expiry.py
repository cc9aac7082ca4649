"""BDD tests for verification code expiry and reissue."""

from datetime import timedelta

from protean.utils.globals import current_domain
from pytest_bdd import parsers, scenarios, then, when

from dispatch.order.pickup import confirm_pickup
from dispatch.utils.locks import code_key, serialized_process
from dispatch.verification.expiry import ExpireVerificationCodes
from dispatch.verification.issuance import ReissueVerificationCode

scenarios("features/verification_expiry.feature")


def _later(clock, hours):
    return clock["start"] + timedelta(hours=hours)


@when("the courier presents the seller's pickup code")
def present_seller_pickup_code(order_id, latest_secret, result):
    result["outcome"] = confirm_pickup(order_id, latest_secret("seller-1", "pickup"))


@when(parsers.cfparse("the courier presents the seller's pickup code {hours:d} hours later"))
def present_pickup_code_later(order_id, latest_secret, clock, result, hours):
    result["outcome"] = confirm_pickup(order_id, latest_secret("seller-1", "pickup"), as_of=_later(clock, hours))


@when(parsers.cfparse('the courier presents the pickup code "{secret}" {count:d} times'))
def present_wrong_code_repeatedly(order_id, secret, count, result):
    for _ in range(count):
        result["outcome"] = confirm_pickup(order_id, secret)


@when(parsers.cfparse("the pickup code is reissued {hours:d} hours later"))
def reissue_pickup_code(load_order, order_id, clock, result, hours):
    delivery_id = str(load_order(order_id).delivery.id)
    command = ReissueVerificationCode(delivery_id=delivery_id, step="pickup", as_of=_later(clock, hours))
    result["outcome"] = serialized_process(command, code_key(delivery_id, "pickup"))
    assert result["outcome"].ok


@when(parsers.cfparse("the expiry sweep runs {hours:d} hours later"), target_fixture="expired_count")
def run_expiry_sweep(clock, hours):
    return current_domain.process(ExpireVerificationCodes(as_of=_later(clock, hours)), asynchronous=False)


@then(parsers.cfparse("{count:d} code has expired"))
def codes_expired(expired_count, count):
    assert expired_count == count
