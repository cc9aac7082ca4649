"""BDD tests for payout requests and settlement."""

import pytest
from protean.utils.globals import current_domain
from pytest_bdd import parsers, scenarios, then, when

from dispatch.ledger.payout import Payout
from dispatch.ledger.payouts import (
    ApprovePayout,
    CompletePayout,
    FailPayout,
    StartPayoutProcessing,
    process_for_payout,
    request_payout,
)

scenarios("features/payouts.feature")


@pytest.fixture()
def payout():
    return {"id": None}


@when(parsers.cfparse('"{payee_id}" requests a payout to mobile money'))
def request_mobile_money_payout(payee_id, payout, result):
    outcome = request_payout(payee_id, "seller", mobile_money_number="+251911000000")
    result["outcome"] = outcome
    if outcome.ok:
        payout["id"] = outcome.data["payout_id"]


@when("operations approve the payout")
def approve(payout, result):
    result["outcome"] = process_for_payout(ApprovePayout(payout_id=payout["id"], approved_by="ops-1"))


@when("operations start processing the payout")
def start_processing(payout, result):
    result["outcome"] = process_for_payout(StartPayoutProcessing(payout_id=payout["id"], processed_by="ops-1"))


@when(parsers.cfparse('operations complete the payout with reference "{reference}"'))
def complete(payout, result, reference):
    result["outcome"] = process_for_payout(CompletePayout(payout_id=payout["id"], transaction_reference=reference))


@when(parsers.cfparse('the payout fails because "{reason}"'))
def fail(payout, result, reason):
    result["outcome"] = process_for_payout(FailPayout(payout_id=payout["id"], reason=reason))


@then(parsers.cfparse("the payout amount is {amount:f}"))
def payout_amount_is(result, amount):
    assert result["outcome"].data["amount"] == amount


@then(parsers.cfparse('the payout status is "{status}"'))
def payout_status_is(payout, status):
    assert current_domain.repository_for(Payout).get(payout["id"]).status == status
