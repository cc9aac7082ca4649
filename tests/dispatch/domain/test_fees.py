from decimal import Decimal

import pytest
from dispatch.ledger.fees import completion_bonus, courier_split, delivery_fee, q, seller_split
from dispatch.settings import DispatchSettings

SETTINGS = DispatchSettings()


class TestSellerSplit:
    def test_fifteen_percent_commission(self):
        amounts = seller_split(1000, SETTINGS)
        assert amounts.commission == Decimal("150.00")
        assert amounts.net == Decimal("850.00")
        assert amounts.bonus == Decimal("0.00")

    def test_rounds_half_up_to_the_cent(self):
        amounts = seller_split(Decimal("0.10"), SETTINGS)
        assert amounts.commission == Decimal("0.02")
        assert amounts.net == Decimal("0.08")

    @pytest.mark.parametrize("gross", ["999.99", "0.01", "123.45", "1000000"])
    def test_commission_plus_net_equals_gross(self, gross):
        amounts = seller_split(Decimal(gross), SETTINGS)
        assert amounts.commission + amounts.net == amounts.gross

    def test_rate_is_configurable(self):
        amounts = seller_split(1000, DispatchSettings(seller_commission_rate=Decimal("0.10")))
        assert amounts.commission == Decimal("100.00")


class TestDeliveryFee:
    def test_base_plus_per_km(self):
        assert delivery_fee(3.5, SETTINGS) == Decimal("85.00")

    def test_unknown_distance_uses_default(self):
        assert delivery_fee(None, SETTINGS) == Decimal("100.00")

    def test_zero_distance_pays_the_base_fee(self):
        assert delivery_fee(0, SETTINGS) == Decimal("50.00")

    def test_minimum_fee_applies(self):
        settings = DispatchSettings(base_delivery_fee=Decimal("10"), per_km_rate=Decimal("2"))
        assert delivery_fee(1, settings) == Decimal("30.00")


class TestCourierSplit:
    def test_commission_on_the_fee(self):
        amounts = courier_split(Decimal("100"), completed_deliveries=3, settings=SETTINGS)
        assert amounts.commission == Decimal("15.00")
        assert amounts.net == Decimal("85.00")

    def test_every_tenth_delivery_earns_a_bonus(self):
        assert completion_bonus(10, SETTINGS) == Decimal("100.00")
        assert completion_bonus(20, SETTINGS) == Decimal("100.00")
        assert completion_bonus(11, SETTINGS) == Decimal("0")
        assert completion_bonus(0, SETTINGS) == Decimal("0")

    def test_bonus_is_added_to_net(self):
        amounts = courier_split(Decimal("100"), completed_deliveries=10, settings=SETTINGS)
        assert amounts.net == Decimal("185.00")
        assert amounts.commission + amounts.net - amounts.bonus == amounts.gross


def test_q_quantizes_floats_through_their_repr():
    assert q(0.1 + 0.2, Decimal("0.01")) == Decimal("0.30")
