"""Business configuration for dispatch, verification and settlement.

Values come from ``DISPATCH_*`` environment variables with the defaults below.
Tests and operators swap the active settings with ``set_settings()``.
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal

TIE_BREAKS = ("active_jobs", "rating", "freshness")


def _env(name: str, default, cast):
    raw = os.environ.get(f"DISPATCH_{name}")
    if raw is None or raw == "":
        return default
    if cast is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return cast(raw)


@dataclass(frozen=True)
class DispatchSettings:
    # Order lifecycle
    auto_approve_on_payment: bool = True

    # Matching
    multi_job_capacity: bool = False
    dispatch_tie_breaks: tuple[str, ...] = TIE_BREAKS
    max_assignment_attempts: int = 5
    dispatch_max_wait_minutes: int = 15
    default_radius_km: float = 10.0

    # Verification codes
    otp_ttl_minutes: int = 10
    qr_ttl_minutes: int = 120
    otp_length: int = 6
    max_verification_attempts: int = 5
    code_pepper: str = field(default="dispatch-dev-pepper", repr=False)

    # Ledger
    seller_commission_rate: Decimal = Decimal("0.15")
    courier_commission_rate: Decimal = Decimal("0.15")
    seller_holding_days: int = 7
    courier_holding_days: int = 1
    base_delivery_fee: Decimal = Decimal("50")
    per_km_rate: Decimal = Decimal("10")
    min_delivery_fee: Decimal = Decimal("30")
    default_distance_km: Decimal = Decimal("5")
    courier_bonus_threshold: int = 10
    courier_bonus_amount: Decimal = Decimal("100")
    min_payout_amount: Decimal = Decimal("100")
    money_precision: Decimal = Decimal("0.01")
    currency: str = "ETB"

    @classmethod
    def from_env(cls) -> "DispatchSettings":
        defaults = cls()
        tie_breaks = _env("TIE_BREAKS", None, str)
        return cls(
            auto_approve_on_payment=_env("AUTO_APPROVE_ON_PAYMENT", defaults.auto_approve_on_payment, bool),
            multi_job_capacity=_env("MULTI_JOB_CAPACITY", defaults.multi_job_capacity, bool),
            dispatch_tie_breaks=(
                tuple(t.strip() for t in tie_breaks.split(",") if t.strip() in TIE_BREAKS)
                if tie_breaks
                else defaults.dispatch_tie_breaks
            ),
            max_assignment_attempts=_env("MAX_ASSIGNMENT_ATTEMPTS", defaults.max_assignment_attempts, int),
            dispatch_max_wait_minutes=_env("MAX_WAIT_MINUTES", defaults.dispatch_max_wait_minutes, int),
            default_radius_km=_env("DEFAULT_RADIUS_KM", defaults.default_radius_km, float),
            otp_ttl_minutes=_env("OTP_TTL_MINUTES", defaults.otp_ttl_minutes, int),
            qr_ttl_minutes=_env("QR_TTL_MINUTES", defaults.qr_ttl_minutes, int),
            otp_length=_env("OTP_LENGTH", defaults.otp_length, int),
            max_verification_attempts=_env("MAX_VERIFICATION_ATTEMPTS", defaults.max_verification_attempts, int),
            code_pepper=_env("CODE_PEPPER", defaults.code_pepper, str),
            seller_commission_rate=_env("SELLER_COMMISSION_RATE", defaults.seller_commission_rate, Decimal),
            courier_commission_rate=_env("COURIER_COMMISSION_RATE", defaults.courier_commission_rate, Decimal),
            seller_holding_days=_env("SELLER_HOLDING_DAYS", defaults.seller_holding_days, int),
            courier_holding_days=_env("COURIER_HOLDING_DAYS", defaults.courier_holding_days, int),
            base_delivery_fee=_env("BASE_DELIVERY_FEE", defaults.base_delivery_fee, Decimal),
            per_km_rate=_env("PER_KM_RATE", defaults.per_km_rate, Decimal),
            min_delivery_fee=_env("MIN_DELIVERY_FEE", defaults.min_delivery_fee, Decimal),
            default_distance_km=_env("DEFAULT_DISTANCE_KM", defaults.default_distance_km, Decimal),
            courier_bonus_threshold=_env("COURIER_BONUS_THRESHOLD", defaults.courier_bonus_threshold, int),
            courier_bonus_amount=_env("COURIER_BONUS_AMOUNT", defaults.courier_bonus_amount, Decimal),
            min_payout_amount=_env("MIN_PAYOUT_AMOUNT", defaults.min_payout_amount, Decimal),
            money_precision=_env("MONEY_PRECISION", defaults.money_precision, Decimal),
            currency=_env("CURRENCY", defaults.currency, str),
        )


_current_settings: DispatchSettings | None = None


def get_settings() -> DispatchSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = DispatchSettings.from_env()
    return _current_settings


def set_settings(settings: DispatchSettings) -> None:
    global _current_settings
    _current_settings = settings


def override_settings(**changes) -> DispatchSettings:
    """Replace selected fields of the active settings and return the result."""
    updated = replace(get_settings(), **changes)
    set_settings(updated)
    return updated


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
