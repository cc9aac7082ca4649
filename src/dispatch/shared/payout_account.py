"""PayoutAccount value object — where a payee's money is sent."""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String

from dispatch.domain import dispatch


@dispatch.value_object
class PayoutAccount:
    """Bank account and/or mobile-money wallet supplied by the account service."""

    bank_name = String(max_length=100)
    account_name = String(max_length=255)
    account_number = String(max_length=50)
    mobile_money_number = String(max_length=20)

    @invariant.post
    def has_a_destination(self):
        has_bank = bool(self.bank_name and self.account_number)
        if not has_bank and not self.mobile_money_number:
            raise ValidationError(
                {"payout_account": ["Provide bank name and account number, or a mobile-money number"]}
            )

    @property
    def channel(self) -> str:
        return "bank" if self.bank_name and self.account_number else "mobile_money"
