"""Payout event handler — payees hear about settled payouts, operators about failed ones."""

from protean.utils.mixins import handle

from dispatch.domain import dispatch
from dispatch.ledger.events import PayoutCompleted, PayoutFailed, PayoutRejected
from dispatch.ledger.payout import Payout
from dispatch.notifier import notify, notify_operators
from dispatch.notifier.port import Topic


@dispatch.event_handler(part_of=Payout)
class PayoutNotificationHandler:
    @handle(PayoutCompleted)
    def on_payout_completed(self, event: PayoutCompleted) -> None:
        notify(
            event.payee_id,
            Topic.PAYOUT_COMPLETED,
            payout_id=str(event.payout_id),
            amount=event.amount,
            reference=event.transaction_reference,
        )

    @handle(PayoutRejected)
    def on_payout_rejected(self, event: PayoutRejected) -> None:
        payload = {"payout_id": str(event.payout_id), "amount": event.amount, "reason": event.reason}
        notify(event.payee_id, Topic.PAYOUT_REJECTED, **payload)
        notify_operators(Topic.PAYOUT_REJECTED, payee_id=str(event.payee_id), **payload)

    @handle(PayoutFailed)
    def on_payout_failed(self, event: PayoutFailed) -> None:
        payload = {"payout_id": str(event.payout_id), "amount": event.amount, "reason": event.reason}
        notify(event.payee_id, Topic.PAYOUT_FAILED, **payload)
        notify_operators(Topic.PAYOUT_FAILED, payee_id=str(event.payee_id), **payload)
