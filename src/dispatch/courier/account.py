"""Courier payout destination — command and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import Outcome
from dispatch.shared.payout_account import PayoutAccount


@dispatch.command(part_of="Courier")
class UpdatePayoutAccount:
    """Bank/mobile-money details supplied by the account service."""

    courier_id = Identifier(required=True)
    bank_name = String(max_length=100)
    account_name = String(max_length=255)
    account_number = String(max_length=50)
    mobile_money_number = String(max_length=20)


@dispatch.command_handler(part_of=Courier)
class PayoutAccountHandler:
    @handle(UpdatePayoutAccount)
    def update_payout_account(self, command):
        repo = current_domain.repository_for(Courier)
        try:
            courier = repo.get(command.courier_id)
        except ObjectNotFoundError:
            return Outcome.not_found("Courier", command.courier_id)
        courier.update_payout_account(
            PayoutAccount(
                bank_name=command.bank_name,
                account_name=command.account_name,
                account_number=command.account_number,
                mobile_money_number=command.mobile_money_number,
            )
        )
        repo.add(courier)
        return Outcome.success(courier_id=str(courier.id), channel=courier.payout_account.channel)
