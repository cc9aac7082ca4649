"""Earnings ledger domain events."""

from protean.fields import DateTime, Float, Identifier, String, Text

from dispatch.domain import dispatch


# ---------------------------------------------------------------------------
# EarningsEntry
# ---------------------------------------------------------------------------
@dispatch.event(part_of="EarningsEntry")
class EarningsRecorded:
    __version__ = 1

    entry_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    order_id = Identifier(required=True)
    delivery_id = Identifier()
    gross_amount = Float(required=True)
    commission_amount = Float(required=True)
    bonus_amount = Float()
    net_amount = Float(required=True)
    available_date = DateTime(required=True)
    recorded_at = DateTime(required=True)


@dispatch.event(part_of="EarningsEntry")
class EarningsReleased:
    """A pending entry passed its holding period and can be paid out."""

    __version__ = 1

    entry_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    net_amount = Float(required=True)
    released_at = DateTime(required=True)


@dispatch.event(part_of="EarningsEntry")
class EarningsHeld:
    __version__ = 1

    entry_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    held_at = DateTime(required=True)


@dispatch.event(part_of="EarningsEntry")
class EarningsHoldReleased:
    __version__ = 1

    entry_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    status = String(required=True)
    released_at = DateTime(required=True)


@dispatch.event(part_of="EarningsEntry")
class EarningsWithdrawn:
    __version__ = 1

    entry_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payout_id = Identifier(required=True)
    net_amount = Float(required=True)
    withdrawn_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Payout
# ---------------------------------------------------------------------------
@dispatch.event(part_of="Payout")
class PayoutRequested:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    amount = Float(required=True)
    currency = String()
    entry_ids = Text()  # JSON list
    channel = String()
    requested_at = DateTime(required=True)


@dispatch.event(part_of="Payout")
class PayoutApproved:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    approved_by = String()
    approved_at = DateTime(required=True)


@dispatch.event(part_of="Payout")
class PayoutProcessingStarted:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    processed_by = String()
    started_at = DateTime(required=True)


@dispatch.event(part_of="Payout")
class PayoutCompleted:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    amount = Float(required=True)
    transaction_reference = String()
    completed_at = DateTime(required=True)


@dispatch.event(part_of="Payout")
class PayoutRejected:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    amount = Float(required=True)
    reason = String()
    rejected_at = DateTime(required=True)


@dispatch.event(part_of="Payout")
class PayoutFailed:
    __version__ = 1

    payout_id = Identifier(required=True)
    payee_id = Identifier(required=True)
    payee_type = String(required=True)
    amount = Float(required=True)
    reason = String()
    failed_at = DateTime(required=True)
