"""Commission and delivery-fee arithmetic.

All amounts are computed as ``Decimal`` and quantized to the configured money
precision. The net amount is derived by subtraction from the quantized
commission, so ``commission + net - bonus == gross`` holds exactly.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from dispatch.settings import DispatchSettings

ZERO = Decimal("0")


def q(amount, precision: Decimal) -> Decimal:
    return Decimal(str(amount)).quantize(precision, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Split:
    gross: Decimal
    rate: Decimal
    commission: Decimal
    bonus: Decimal
    net: Decimal


def split(gross, rate: Decimal, precision: Decimal, bonus=ZERO) -> Split:
    gross = q(gross, precision)
    commission = q(gross * rate, precision)
    bonus = q(bonus, precision)
    return Split(gross=gross, rate=rate, commission=commission, bonus=bonus, net=gross - commission + bonus)


def seller_split(order_amount, settings: DispatchSettings) -> Split:
    return split(order_amount, settings.seller_commission_rate, settings.money_precision)


def delivery_fee(distance_km, settings: DispatchSettings) -> Decimal:
    """max(base + km x per-km rate, minimum fee); unknown distance uses the default."""
    km = settings.default_distance_km if distance_km is None else Decimal(str(distance_km))
    fee = settings.base_delivery_fee + km * settings.per_km_rate
    return q(max(fee, settings.min_delivery_fee), settings.money_precision)


def completion_bonus(completed_deliveries: int, settings: DispatchSettings) -> Decimal:
    """Every N-th completed delivery earns a flat bonus."""
    threshold = settings.courier_bonus_threshold
    if threshold and completed_deliveries and completed_deliveries % threshold == 0:
        return q(settings.courier_bonus_amount, settings.money_precision)
    return ZERO


def courier_split(fee, completed_deliveries: int, settings: DispatchSettings) -> Split:
    return split(
        fee,
        settings.courier_commission_rate,
        settings.money_precision,
        bonus=completion_bonus(completed_deliveries, settings),
    )
