"""EarningsEntry aggregate — what a payee is owed for one delivered order.

Each entry records the gross amount, the platform commission taken from it,
any completion bonus, and the resulting net. The amounts are fixed when the
entry is recorded; only its status and payout link change afterwards.

State Machine:
    pending → available → withdrawn
    pending/available → on_hold → (back to the status it was held from)

An entry linked to a payout stays ``available`` but is frozen: it cannot be
held or linked again until the payout completes (withdrawn) or is rejected or
failed (unlinked, available again).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from dispatch.domain import dispatch
from dispatch.errors import InvalidTransition, PayoutConflict
from dispatch.ledger.events import (
    EarningsHeld,
    EarningsHoldReleased,
    EarningsRecorded,
    EarningsReleased,
    EarningsWithdrawn,
)
from dispatch.ledger.fees import Split
from dispatch.settings import get_settings
from dispatch.utils.clock import as_utc, utcnow


class PayeeType(Enum):
    SELLER = "seller"
    COURIER = "courier"


class EntryStatus(Enum):
    PENDING = "pending"
    AVAILABLE = "available"
    WITHDRAWN = "withdrawn"
    ON_HOLD = "on_hold"


@dispatch.aggregate
class EarningsEntry:
    payee_id = Identifier(required=True)
    payee_type = String(required=True, max_length=10, choices=PayeeType)
    order_id = Identifier(required=True)
    delivery_id = Identifier()
    gross_amount = Float(required=True, min_value=0.0)
    rate = Float(required=True, min_value=0.0, max_value=1.0)
    commission_amount = Float(required=True, min_value=0.0)
    bonus_amount = Float(default=0.0, min_value=0.0)
    net_amount = Float(required=True)
    distance_km = Float()
    status = String(max_length=10, choices=EntryStatus, default=EntryStatus.PENDING.value)
    held_from_status = String(max_length=10, choices=EntryStatus)
    available_date = DateTime(required=True)
    payout_id = Identifier()
    notes = Text()
    released_at = DateTime()
    withdrawn_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def amounts_are_conserved(self):
        precision = get_settings().money_precision

        def _d(value):
            return Decimal(str(value or 0)).quantize(precision)

        if _d(self.commission_amount) + _d(self.net_amount) - _d(self.bonus_amount) != _d(self.gross_amount):
            raise ValidationError({"net_amount": ["Commission plus net minus bonus must equal the gross amount"]})

    @invariant.post
    def linked_entries_are_available_or_withdrawn(self):
        if self.payout_id and self.status not in (EntryStatus.AVAILABLE.value, EntryStatus.WITHDRAWN.value):
            raise ValidationError({"payout_id": [f"A {self.status} entry cannot belong to a payout"]})

    @classmethod
    def record(
        cls,
        payee_id: str,
        payee_type: PayeeType,
        order_id: str,
        amounts: Split,
        available_date: datetime,
        delivery_id: str | None = None,
        distance_km: float | None = None,
        now: datetime | None = None,
    ):
        now = now or utcnow()
        entry = cls(
            payee_id=str(payee_id),
            payee_type=payee_type.value,
            order_id=str(order_id),
            delivery_id=str(delivery_id) if delivery_id else None,
            gross_amount=float(amounts.gross),
            rate=float(amounts.rate),
            commission_amount=float(amounts.commission),
            bonus_amount=float(amounts.bonus),
            net_amount=float(amounts.net),
            distance_km=distance_km,
            status=EntryStatus.PENDING.value,
            available_date=available_date,
            created_at=now,
            updated_at=now,
        )
        entry.raise_(
            EarningsRecorded(
                entry_id=str(entry.id),
                payee_id=entry.payee_id,
                payee_type=entry.payee_type,
                order_id=entry.order_id,
                delivery_id=entry.delivery_id,
                gross_amount=entry.gross_amount,
                commission_amount=entry.commission_amount,
                bonus_amount=entry.bonus_amount,
                net_amount=entry.net_amount,
                available_date=available_date,
                recorded_at=now,
            )
        )
        return entry

    @property
    def net(self) -> Decimal:
        return Decimal(str(self.net_amount))

    @property
    def is_linked(self) -> bool:
        return bool(self.payout_id)

    @property
    def is_payable(self) -> bool:
        return self.status == EntryStatus.AVAILABLE.value and not self.is_linked

    def is_matured(self, now: datetime) -> bool:
        return as_utc(self.available_date) <= as_utc(now)

    def _touch(self, now: datetime) -> None:
        current = as_utc(self.updated_at)
        if current is None or as_utc(now) > current:
            self.updated_at = now

    # -------------------------------------------------------------------
    # Holding period
    # -------------------------------------------------------------------
    def release(self, now: datetime | None = None) -> None:
        """pending → available once the holding period has passed."""
        now = now or utcnow()
        if self.status != EntryStatus.PENDING.value:
            raise InvalidTransition(f"Cannot release a {self.status} entry")
        if not self.is_matured(now):
            raise InvalidTransition(f"Entry {self.id} is held until {self.available_date.isoformat()}")

        self.status = EntryStatus.AVAILABLE.value
        self.released_at = now
        self._touch(now)
        self.raise_(
            EarningsReleased(
                entry_id=str(self.id),
                payee_id=self.payee_id,
                net_amount=self.net_amount,
                released_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Disputes
    # -------------------------------------------------------------------
    def hold(self, reason: str | None = None, now: datetime | None = None) -> None:
        if self.is_linked:
            raise PayoutConflict(f"Entry {self.id} is part of payout {self.payout_id}")
        if self.status not in (EntryStatus.PENDING.value, EntryStatus.AVAILABLE.value):
            raise InvalidTransition(f"Cannot hold a {self.status} entry")

        now = now or utcnow()
        previous = self.status
        self.held_from_status = previous
        self.status = EntryStatus.ON_HOLD.value
        if reason:
            self.notes = reason
        self._touch(now)
        self.raise_(
            EarningsHeld(
                entry_id=str(self.id),
                payee_id=self.payee_id,
                previous_status=previous,
                reason=reason,
                held_at=now,
            )
        )

    def release_hold(self, now: datetime | None = None) -> None:
        if self.status != EntryStatus.ON_HOLD.value:
            raise InvalidTransition(f"Entry {self.id} is not on hold")

        now = now or utcnow()
        self.status = self.held_from_status or EntryStatus.PENDING.value
        self.held_from_status = None
        self._touch(now)
        self.raise_(
            EarningsHoldReleased(
                entry_id=str(self.id),
                payee_id=self.payee_id,
                status=self.status,
                released_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payout linkage
    # -------------------------------------------------------------------
    def link_to_payout(self, payout_id: str, now: datetime | None = None) -> None:
        if self.is_linked:
            raise PayoutConflict(f"Entry {self.id} is already part of payout {self.payout_id}")
        if self.status != EntryStatus.AVAILABLE.value:
            raise InvalidTransition(f"Only available entries can be paid out, entry {self.id} is {self.status}")
        self.payout_id = str(payout_id)
        self._touch(now or utcnow())

    def unlink(self, payout_id: str, now: datetime | None = None) -> None:
        """Return the entry to the payable pool after its payout was rejected or failed."""
        if self.payout_id != str(payout_id):
            raise PayoutConflict(f"Entry {self.id} is not part of payout {payout_id}")
        self.payout_id = None
        self._touch(now or utcnow())

    def mark_withdrawn(self, payout_id: str, now: datetime | None = None) -> None:
        if self.payout_id != str(payout_id):
            raise PayoutConflict(f"Entry {self.id} is not part of payout {payout_id}")
        if self.status != EntryStatus.AVAILABLE.value:
            raise InvalidTransition(f"Cannot withdraw a {self.status} entry")

        now = now or utcnow()
        self.status = EntryStatus.WITHDRAWN.value
        self.withdrawn_at = now
        self._touch(now)
        self.raise_(
            EarningsWithdrawn(
                entry_id=str(self.id),
                payee_id=self.payee_id,
                payout_id=str(payout_id),
                net_amount=self.net_amount,
                withdrawn_at=now,
            )
        )
