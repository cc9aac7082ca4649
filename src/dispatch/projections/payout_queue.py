"""Payout queue — operator work list of payouts waiting for a decision."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch
from dispatch.ledger.events import (
    PayoutApproved,
    PayoutCompleted,
    PayoutFailed,
    PayoutProcessingStarted,
    PayoutRejected,
    PayoutRequested,
)
from dispatch.ledger.payout import Payout


@dispatch.projection
class PayoutQueueView:
    payout_id = Identifier(identifier=True, required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    amount = Float(required=True)
    currency = String()
    channel = String()
    status = String(required=True)
    reason = String(max_length=500)
    requested_at = DateTime()
    updated_at = DateTime()


@dispatch.projector(projector_for=PayoutQueueView, aggregates=[Payout])
class PayoutQueueViewProjector:
    @on(PayoutRequested)
    def on_payout_requested(self, event):
        current_domain.repository_for(PayoutQueueView).add(
            PayoutQueueView(
                payout_id=event.payout_id,
                payee_id=event.payee_id,
                payee_type=event.payee_type,
                amount=event.amount,
                currency=event.currency,
                channel=event.channel,
                status="Pending",
                requested_at=event.requested_at,
                updated_at=event.requested_at,
            )
        )

    def _update_status(self, payout_id, status, updated_at, reason=None):
        repo = current_domain.repository_for(PayoutQueueView)
        view = repo.get(payout_id)
        view.status = status
        view.updated_at = updated_at
        if reason:
            view.reason = reason
        repo.add(view)

    @on(PayoutApproved)
    def on_payout_approved(self, event):
        self._update_status(event.payout_id, "Approved", event.approved_at)

    @on(PayoutProcessingStarted)
    def on_payout_processing(self, event):
        self._update_status(event.payout_id, "Processing", event.started_at)

    @on(PayoutCompleted)
    def on_payout_completed(self, event):
        self._update_status(event.payout_id, "Completed", event.completed_at)

    @on(PayoutRejected)
    def on_payout_rejected(self, event):
        self._update_status(event.payout_id, "Rejected", event.rejected_at, event.reason)

    @on(PayoutFailed)
    def on_payout_failed(self, event):
        self._update_status(event.payout_id, "Failed", event.failed_at, event.reason)
