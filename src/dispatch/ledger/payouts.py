"""Payout requests and the operator workflow that settles them.

A payout request batches the payee's available, unlinked entries (oldest
first) under the payee lock, so two concurrent requests can never link the
same entry. While a payout is open the payee cannot request another one.
Completing a payout withdraws its entries; rejecting or failing it unlinks
them so they can be batched again.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from dispatch.courier.courier import Courier
from dispatch.domain import dispatch
from dispatch.errors import DispatchRuleViolation, ErrorKind, Outcome
from dispatch.ledger.earnings import EarningsEntry, PayeeType
from dispatch.ledger.fees import ZERO, q
from dispatch.ledger.payout import Payout
from dispatch.ledger.queries import open_payout_for, payable_entries
from dispatch.settings import get_settings
from dispatch.shared.payout_account import PayoutAccount
from dispatch.utils.clock import utcnow
from dispatch.utils.locks import payee_key, serialized_process

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@dispatch.command(part_of="Payout")
class RequestPayout:
    payee_id = Identifier(required=True)
    payee_type = String(required=True, choices=PayeeType)
    amount = Float(min_value=0.0)  # Optional: everything available when omitted
    bank_name = String(max_length=100)
    account_name = String(max_length=255)
    account_number = String(max_length=50)
    mobile_money_number = String(max_length=20)
    notes = Text()
    as_of = DateTime()


@dispatch.command(part_of="Payout")
class ApprovePayout:
    payout_id = Identifier(required=True)
    approved_by = String(max_length=255)
    as_of = DateTime()


@dispatch.command(part_of="Payout")
class StartPayoutProcessing:
    payout_id = Identifier(required=True)
    processed_by = String(max_length=255)
    as_of = DateTime()


@dispatch.command(part_of="Payout")
class CompletePayout:
    payout_id = Identifier(required=True)
    transaction_reference = String(max_length=255)
    payment_proof_url = String(max_length=1000)
    as_of = DateTime()


@dispatch.command(part_of="Payout")
class RejectPayout:
    payout_id = Identifier(required=True)
    reason = String(max_length=500)
    as_of = DateTime()


@dispatch.command(part_of="Payout")
class FailPayout:
    payout_id = Identifier(required=True)
    reason = String(max_length=500)
    as_of = DateTime()


def request_payout(payee_id: str, payee_type: str, **kwargs) -> Outcome:
    command = RequestPayout(payee_id=str(payee_id), payee_type=payee_type, **kwargs)
    return serialized_process(command, payee_key(payee_id))


def process_for_payout(command) -> Outcome:
    """Run a payout workflow command under the payee's lock."""
    try:
        payout = current_domain.repository_for(Payout).get(command.payout_id)
    except ObjectNotFoundError:
        return Outcome.not_found("Payout", command.payout_id)
    return serialized_process(command, payee_key(payout.payee_id))


def _destination_for(command) -> PayoutAccount | None:
    if command.bank_name or command.account_number or command.mobile_money_number:
        return PayoutAccount(
            bank_name=command.bank_name,
            account_name=command.account_name,
            account_number=command.account_number,
            mobile_money_number=command.mobile_money_number,
        )
    if command.payee_type == PayeeType.COURIER.value:
        try:
            courier = current_domain.repository_for(Courier).get(command.payee_id)
        except ObjectNotFoundError:
            return None
        return courier.payout_account
    return None


def _select_entries(entries: list[EarningsEntry], amount) -> list[EarningsEntry]:
    """Oldest first; with an amount, the leading entries whose total fits it."""
    if amount is None:
        return entries
    selected, total = [], ZERO
    for entry in entries:
        if total + entry.net > amount:
            break
        selected.append(entry)
        total += entry.net
    return selected


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@dispatch.command_handler(part_of=Payout)
class PayoutHandler:
    @handle(RequestPayout)
    def request(self, command):
        settings = get_settings()
        now = command.as_of or utcnow()
        payee_id = str(command.payee_id)

        existing = open_payout_for(payee_id)
        if existing is not None:
            return Outcome.failure(
                ErrorKind.PAYOUT_CONFLICT,
                f"Payout {existing.id} is still {existing.status}",
                payee_id=payee_id,
                payout_id=str(existing.id),
            )

        requested = q(command.amount, settings.money_precision) if command.amount is not None else None
        entries = _select_entries(payable_entries(payee_id), requested)
        total = sum((e.net for e in entries), ZERO)
        if not entries or total < settings.min_payout_amount:
            return Outcome.failure(
                ErrorKind.INVALID_TRANSITION,
                f"Payout of {total} is below the minimum of {settings.min_payout_amount}",
                payee_id=payee_id,
                available=float(total),
            )

        destination = _destination_for(command)
        if destination is None:
            return Outcome.failure(ErrorKind.INVALID_TRANSITION, "No payout destination on file", payee_id=payee_id)

        payout = Payout.request(
            payee_id=payee_id,
            payee_type=command.payee_type,
            entry_ids=[e.id for e in entries],
            amount=total,
            destination=destination,
            currency=settings.currency,
            notes=command.notes,
            now=now,
        )
        entry_repo = current_domain.repository_for(EarningsEntry)
        try:
            for entry in entries:
                entry.link_to_payout(payout.id, now=now)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, payee_id=payee_id)
        for entry in entries:
            entry_repo.add(entry)
        current_domain.repository_for(Payout).add(payout)

        logger.info(
            "Payout requested",
            payout_id=str(payout.id),
            payee_id=payee_id,
            amount=payout.amount,
            entries=len(entries),
        )
        return Outcome.success(
            payout_id=str(payout.id),
            amount=payout.amount,
            entry_ids=payout.linked_entry_ids,
            status=payout.status,
        )

    @handle(ApprovePayout)
    def approve(self, command):
        return self._settle(command, lambda p, now: p.approve(command.approved_by, now=now))

    @handle(StartPayoutProcessing)
    def start_processing(self, command):
        return self._settle(command, lambda p, now: p.start_processing(command.processed_by, now=now))

    @handle(CompletePayout)
    def complete(self, command):
        def _complete(payout, now):
            payout.complete(command.transaction_reference, command.payment_proof_url, now=now)
            for entry in self._linked_entries(payout):
                entry.mark_withdrawn(payout.id, now=now)
                current_domain.repository_for(EarningsEntry).add(entry)

        return self._settle(command, _complete)

    @handle(RejectPayout)
    def reject(self, command):
        def _reject(payout, now):
            payout.reject(command.reason, now=now)
            self._release_entries(payout, now)

        return self._settle(command, _reject)

    @handle(FailPayout)
    def fail(self, command):
        def _fail(payout, now):
            payout.fail(command.reason, now=now)
            self._release_entries(payout, now)

        return self._settle(command, _fail)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _linked_entries(payout: Payout) -> list[EarningsEntry]:
        repo = current_domain.repository_for(EarningsEntry)
        return [repo.get(entry_id) for entry_id in payout.linked_entry_ids]

    def _release_entries(self, payout: Payout, now) -> None:
        repo = current_domain.repository_for(EarningsEntry)
        for entry in self._linked_entries(payout):
            entry.unlink(payout.id, now=now)
            repo.add(entry)

    def _settle(self, command, change) -> Outcome:
        now = command.as_of or utcnow()
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        try:
            change(payout, now)
        except DispatchRuleViolation as exc:
            return Outcome.from_violation(exc, payout_id=str(payout.id))
        repo.add(payout)
        logger.info("Payout status changed", payout_id=str(payout.id), payee_id=payout.payee_id, status=payout.status)
        return Outcome.success(payout_id=str(payout.id), status=payout.status, amount=payout.amount)
