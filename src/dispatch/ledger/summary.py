"""Earnings totals for a payee."""

from decimal import Decimal

from dispatch.ledger.earnings import EntryStatus
from dispatch.ledger.fees import ZERO, q
from dispatch.ledger.queries import entries_for, payouts_for
from dispatch.settings import get_settings
from dispatch.utils.clock import as_utc


def earnings_summary(payee_id: str) -> dict:
    """Net totals per entry status, the amount locked in an open payout, and payout history."""
    precision = get_settings().money_precision
    entries = entries_for(payee_id)
    payouts = payouts_for(payee_id)

    totals = {status.value: ZERO for status in EntryStatus}
    in_payout = ZERO
    gross = commission = bonus = ZERO
    for entry in entries:
        totals[entry.status] += entry.net
        gross += Decimal(str(entry.gross_amount))
        commission += Decimal(str(entry.commission_amount))
        bonus += Decimal(str(entry.bonus_amount or 0))
        if entry.is_linked and entry.status == EntryStatus.AVAILABLE.value:
            in_payout += entry.net

    payable = totals[EntryStatus.AVAILABLE.value] - in_payout
    history = sorted(payouts, key=lambda p: as_utc(p.requested_at), reverse=True)
    return {
        "payee_id": str(payee_id),
        "entry_count": len(entries),
        "gross": float(q(gross, precision)),
        "commission": float(q(commission, precision)),
        "bonus": float(q(bonus, precision)),
        "by_status": {status: float(q(amount, precision)) for status, amount in totals.items()},
        "in_payout": float(q(in_payout, precision)),
        "payable": float(q(payable, precision)),
        "currency": get_settings().currency,
        "payouts": [
            {
                "payout_id": str(p.id),
                "amount": p.amount,
                "status": p.status,
                "requested_at": p.requested_at.isoformat() if p.requested_at else None,
                "open": p.is_open,
            }
            for p in history
        ],
    }
