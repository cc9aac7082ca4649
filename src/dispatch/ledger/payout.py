"""Payout aggregate — a batch of available earnings sent to one payee.

State Machine:
    PENDING → APPROVED → PROCESSING → COMPLETED
    PENDING → REJECTED
    PROCESSING → FAILED

A payee has at most one non-terminal payout at a time. The payout amount is
the sum of the net amounts of the entries it links, fixed at request time.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text, ValueObject

from dispatch.domain import dispatch
from dispatch.errors import InvalidTransition
from dispatch.ledger.events import (
    PayoutApproved,
    PayoutCompleted,
    PayoutFailed,
    PayoutProcessingStarted,
    PayoutRejected,
    PayoutRequested,
)
from dispatch.shared.payout_account import PayoutAccount
from dispatch.utils.clock import as_utc, utcnow


class PayoutStatus(Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    FAILED = "Failed"


_VALID_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.APPROVED, PayoutStatus.REJECTED},
    PayoutStatus.APPROVED: {PayoutStatus.PROCESSING},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED},
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.REJECTED: set(),
    PayoutStatus.FAILED: set(),
}

OPEN_STATUSES = {PayoutStatus.PENDING, PayoutStatus.APPROVED, PayoutStatus.PROCESSING}


@dispatch.aggregate
class Payout:
    payee_id = Identifier(required=True)
    payee_type = String(required=True, max_length=10)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="ETB")
    entry_ids = Text(default="[]")  # JSON list of EarningsEntry ids
    status = String(max_length=20, choices=PayoutStatus, default=PayoutStatus.PENDING.value)
    destination = ValueObject(PayoutAccount)
    requested_at = DateTime()
    approved_at = DateTime()
    approved_by = String(max_length=255)
    processed_at = DateTime()
    processed_by = String(max_length=255)
    transaction_reference = String(max_length=255)
    payment_proof_url = String(max_length=1000)
    rejection_reason = String(max_length=500)
    failure_reason = String(max_length=500)
    notes = Text()
    updated_at = DateTime()

    @invariant.post
    def links_at_least_one_entry(self):
        if not self.linked_entry_ids:
            raise ValidationError({"entry_ids": ["A payout must link at least one earnings entry"]})

    @classmethod
    def request(
        cls,
        payee_id: str,
        payee_type: str,
        entry_ids: list[str],
        amount: Decimal,
        destination: PayoutAccount,
        currency: str = "ETB",
        notes: str | None = None,
        now: datetime | None = None,
    ):
        now = now or utcnow()
        ids = [str(e) for e in entry_ids]
        payout = cls(
            payee_id=str(payee_id),
            payee_type=payee_type,
            amount=float(amount),
            currency=currency,
            entry_ids=json.dumps(ids),
            status=PayoutStatus.PENDING.value,
            destination=destination,
            requested_at=now,
            notes=notes,
            updated_at=now,
        )
        payout.raise_(
            PayoutRequested(
                payout_id=str(payout.id),
                payee_id=payout.payee_id,
                payee_type=payee_type,
                amount=payout.amount,
                currency=currency,
                entry_ids=payout.entry_ids,
                channel=destination.channel,
                requested_at=now,
            )
        )
        return payout

    @property
    def linked_entry_ids(self) -> list[str]:
        return json.loads(self.entry_ids) if self.entry_ids else []

    @property
    def is_open(self) -> bool:
        return PayoutStatus(self.status) in OPEN_STATUSES

    def _transition(self, target: PayoutStatus, now: datetime) -> None:
        current = PayoutStatus(self.status)
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(f"Cannot move payout from {current.value} to {target.value}")
        self.status = target.value
        current_ts = as_utc(self.updated_at)
        if current_ts is None or as_utc(now) > current_ts:
            self.updated_at = now

    def approve(self, approved_by: str | None = None, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._transition(PayoutStatus.APPROVED, now)
        self.approved_at = now
        self.approved_by = approved_by
        self.raise_(
            PayoutApproved(
                payout_id=str(self.id),
                payee_id=self.payee_id,
                approved_by=approved_by,
                approved_at=now,
            )
        )

    def start_processing(self, processed_by: str | None = None, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._transition(PayoutStatus.PROCESSING, now)
        self.processed_by = processed_by
        self.raise_(
            PayoutProcessingStarted(
                payout_id=str(self.id),
                payee_id=self.payee_id,
                processed_by=processed_by,
                started_at=now,
            )
        )

    def complete(
        self,
        transaction_reference: str | None = None,
        payment_proof_url: str | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        self._transition(PayoutStatus.COMPLETED, now)
        self.processed_at = now
        self.transaction_reference = transaction_reference
        self.payment_proof_url = payment_proof_url
        self.raise_(
            PayoutCompleted(
                payout_id=str(self.id),
                payee_id=self.payee_id,
                payee_type=self.payee_type,
                amount=self.amount,
                transaction_reference=transaction_reference,
                completed_at=now,
            )
        )

    def reject(self, reason: str | None = None, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._transition(PayoutStatus.REJECTED, now)
        self.processed_at = now
        self.rejection_reason = reason
        self.raise_(
            PayoutRejected(
                payout_id=str(self.id),
                payee_id=self.payee_id,
                payee_type=self.payee_type,
                amount=self.amount,
                reason=reason,
                rejected_at=now,
            )
        )

    def fail(self, reason: str | None = None, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._transition(PayoutStatus.FAILED, now)
        self.processed_at = now
        self.failure_reason = reason
        self.raise_(
            PayoutFailed(
                payout_id=str(self.id),
                payee_id=self.payee_id,
                payee_type=self.payee_type,
                amount=self.amount,
                reason=reason,
                failed_at=now,
            )
        )
