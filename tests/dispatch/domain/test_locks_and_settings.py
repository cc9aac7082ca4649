import threading

import pytest
from dispatch.settings import DispatchSettings, get_settings, override_settings, reset_settings
from dispatch.utils.locks import (
    KeyedLocks,
    LockBusy,
    code_key,
    courier_key,
    order_key,
    payee_key,
    sort_keys,
)


class TestKeyedLocks:
    def test_keys_are_acquired_in_namespace_order(self):
        keys = [payee_key("p"), code_key("d", "pickup"), courier_key("c"), order_key("o")]
        assert sort_keys(keys) == ["order:o", "courier:c", "code:d:pickup", "payee:p"]

    def test_duplicate_and_empty_keys_are_dropped(self):
        assert sort_keys([order_key("o"), order_key("o"), None, ""]) == ["order:o"]

    def test_same_thread_can_reenter(self):
        locks = KeyedLocks(timeout=0.1)
        with locks.hold("order:1"):
            with locks.hold("order:1"):
                pass

    def test_contended_key_times_out_as_busy(self):
        locks = KeyedLocks(timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("courier:1"):
                held.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(2)
        try:
            with pytest.raises(LockBusy) as exc:
                with locks.hold("courier:1"):
                    pass
            assert exc.value.key == "courier:1"
        finally:
            release.set()
            thread.join()

    def test_different_keys_do_not_contend(self):
        locks = KeyedLocks(timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("courier:1"):
                held.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(2)
        try:
            with locks.hold_all(["courier:2", "order:9"]):
                pass
        finally:
            release.set()
            thread.join()


class TestSettings:
    def test_defaults(self):
        settings = DispatchSettings()
        assert settings.multi_job_capacity is False
        assert settings.otp_ttl_minutes == 10
        assert settings.min_payout_amount == 100
        assert settings.dispatch_tie_breaks == ("active_jobs", "rating", "freshness")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DISPATCH_MULTI_JOB_CAPACITY", "true")
        monkeypatch.setenv("DISPATCH_OTP_TTL_MINUTES", "3")
        monkeypatch.setenv("DISPATCH_SELLER_COMMISSION_RATE", "0.2")
        monkeypatch.setenv("DISPATCH_TIE_BREAKS", "rating, bogus ,freshness")
        settings = DispatchSettings.from_env()
        assert settings.multi_job_capacity is True
        assert settings.otp_ttl_minutes == 3
        assert str(settings.seller_commission_rate) == "0.2"
        assert settings.dispatch_tie_breaks == ("rating", "freshness")

    def test_override_replaces_selected_fields(self):
        override_settings(max_verification_attempts=2)
        assert get_settings().max_verification_attempts == 2
        reset_settings()
        assert get_settings().max_verification_attempts == 5

    def test_pepper_is_kept_out_of_repr(self):
        assert "pepper" not in repr(DispatchSettings(code_pepper="s3cret"))
