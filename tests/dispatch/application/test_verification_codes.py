"""Application tests for issuing, validating, reissuing and expiring codes."""

from datetime import timedelta

import pytest
from protean.utils.globals import current_domain

from dispatch.errors import ErrorKind, VerificationFailure
from dispatch.order.pickup import confirm_pickup
from dispatch.settings import override_settings
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import code_key, serialized_process
from dispatch.verification.code import CodeStatus, VerificationCode
from dispatch.verification.expiry import ExpireVerificationCodes
from dispatch.verification.issuance import IssueVerificationCode, ReissueVerificationCode
from dispatch.verification.queries import codes_for
from dispatch.verification.validation import ValidateVerificationCode


@pytest.fixture()
def assigned(online_courier, paid_order, load_order):
    """An assigned order and its delivery id."""
    online_courier()
    order_id = paid_order()
    return order_id, str(load_order(order_id).delivery.id)


def _issue(delivery_id, order_id, step="pickup", method="qr", **kwargs):
    command = IssueVerificationCode(
        delivery_id=delivery_id,
        order_id=order_id,
        step=step,
        method=method,
        recipient_id="seller-1",
        **kwargs,
    )
    return serialized_process(command, code_key(delivery_id, step))


def _validate(delivery_id, secret, step="pickup", **kwargs):
    command = ValidateVerificationCode(delivery_id=delivery_id, step=step, secret=secret, **kwargs)
    return serialized_process(command, code_key(delivery_id, step))


def _reissue(delivery_id, step="pickup", **kwargs):
    command = ReissueVerificationCode(delivery_id=delivery_id, step=step, **kwargs)
    return serialized_process(command, code_key(delivery_id, step))


class TestIssue:
    def test_assignment_hands_the_pickup_qr_to_the_seller(self, assigned, notifier):
        _, delivery_id = assigned
        [sent] = notifier.sent_to("seller-1", "pickup_code")
        assert sent["payload"]["delivery_id"] == delivery_id
        assert sent["payload"]["method"] == "qr"

    def test_secret_is_returned_once_and_not_stored(self, assigned):
        order_id, delivery_id = assigned
        outcome = _issue(delivery_id, order_id, method="otp")
        secret = outcome.data["secret"]
        assert len(secret) == 6
        code = current_domain.repository_for(VerificationCode).get(outcome.data["code_id"])
        assert secret not in code.code_hash

    def test_new_code_supersedes_the_active_one(self, assigned, latest_secret):
        order_id, delivery_id = assigned
        old_secret = latest_secret("seller-1", "pickup")
        _issue(delivery_id, order_id)

        statuses = sorted(c.status for c in codes_for(delivery_id, "pickup"))
        assert statuses == [CodeStatus.ACTIVE.value, CodeStatus.SUPERSEDED.value]

        outcome = _validate(delivery_id, old_secret)
        assert outcome.error == ErrorKind.VERIFICATION_FAILED
        assert outcome.reason == VerificationFailure.MISMATCH


    def test_reissue_at_the_same_instant_validates(self, assigned):
        order_id, delivery_id = assigned
        at = utcnow()
        _issue(delivery_id, order_id, method="otp", as_of=at)
        fresh = _reissue(delivery_id, as_of=at)
        assert fresh.ok

        outcome = _validate(delivery_id, fresh.data["secret"], as_of=at)
        assert outcome.ok
        assert outcome.data["code_id"] == fresh.data["code_id"]

    def test_reissue_stamped_earlier_than_the_old_code_validates(self, assigned):
        order_id, delivery_id = assigned
        at = utcnow() + timedelta(minutes=1)
        _issue(delivery_id, order_id, method="otp", as_of=at)
        fresh = _reissue(delivery_id, as_of=at - timedelta(seconds=1))

        assert _validate(delivery_id, fresh.data["secret"], as_of=at).ok


class TestValidate:
    def test_valid_secret_is_consumed_once(self, assigned, latest_secret):
        _, delivery_id = assigned
        secret = latest_secret("seller-1", "pickup")
        assert _validate(delivery_id, secret).ok

        replay = _validate(delivery_id, secret)
        assert replay.error == ErrorKind.VERIFICATION_FAILED
        assert replay.reason == VerificationFailure.MISMATCH

    def test_wrong_step_does_not_match(self, assigned, latest_secret):
        _, delivery_id = assigned
        outcome = _validate(delivery_id, latest_secret("seller-1", "pickup"), step="delivery")
        assert outcome.reason == VerificationFailure.MISMATCH

    def test_too_many_wrong_attempts_burn_the_code(self, assigned, latest_secret, notifier):
        override_settings(max_verification_attempts=3)
        _, delivery_id = assigned
        secret = latest_secret("seller-1", "pickup")
        for _ in range(3):
            assert _validate(delivery_id, "wrong").reason == VerificationFailure.MISMATCH

        outcome = _validate(delivery_id, secret)
        assert outcome.reason == VerificationFailure.EXPIRED
        [alert] = notifier.sent_to("operators", "verification_expired")
        assert alert["payload"]["reason"] == "attempts_exhausted"


class TestExpiry:
    def test_lapsed_qr_is_expired_and_reissue_recovers(self, assigned, notifier):
        order_id, delivery_id = assigned
        issued_at = utcnow()
        secret = _issue(delivery_id, order_id, ttl_minutes=60, as_of=issued_at).data["secret"]

        late = _validate(delivery_id, secret, as_of=issued_at + timedelta(minutes=61))
        assert late.error == ErrorKind.VERIFICATION_FAILED
        assert late.reason == VerificationFailure.EXPIRED
        assert notifier.sent_to("operators", "verification_expired")

        reissued = _reissue(delivery_id, as_of=issued_at + timedelta(minutes=62))
        assert reissued.ok
        fresh = notifier.sent_to("seller-1", "pickup_code")[-1]["payload"]["secret"]
        assert fresh == reissued.data["secret"]

        assert _validate(delivery_id, fresh, as_of=issued_at + timedelta(minutes=63)).ok

    def test_expiry_sweep_closes_lapsed_codes(self, assigned):
        _, delivery_id = assigned
        expired = current_domain.process(
            ExpireVerificationCodes(as_of=utcnow() + timedelta(hours=3)),
            asynchronous=False,
        )
        assert expired == 1
        [code] = codes_for(delivery_id, "pickup")
        assert code.status == CodeStatus.EXPIRED.value

    def test_sweep_leaves_live_codes_alone(self, assigned):
        assert current_domain.process(ExpireVerificationCodes(), asynchronous=False) == 0

    def test_pickup_with_expired_code_then_reissue(self, assigned):
        order_id, delivery_id = assigned
        current_domain.process(ExpireVerificationCodes(as_of=utcnow() + timedelta(hours=3)), asynchronous=False)

        reissued = _reissue(delivery_id)
        assert confirm_pickup(order_id, reissued.data["secret"]).ok


class TestReissueGuards:
    def test_unknown_delivery(self):
        outcome = _reissue("no-such-delivery")
        assert outcome.error == ErrorKind.NOT_FOUND

    def test_pickup_code_cannot_be_reissued_after_pickup(self, assigned, latest_secret):
        order_id, delivery_id = assigned
        confirm_pickup(order_id, latest_secret("seller-1", "pickup"))
        outcome = _reissue(delivery_id, step="pickup")
        assert outcome.error == ErrorKind.INVALID_TRANSITION
