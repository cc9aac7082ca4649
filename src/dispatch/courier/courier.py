"""Courier aggregate (CQRS) — one independently lockable record per courier.

Heartbeats own the location and availability fields and are applied
last-write-wins by the heartbeat's own timestamp: a heartbeat older than the
last applied one is ignored, so a delayed network retry can never move a
courier back in time. Capacity slots, delivery totals and rating are changed
only by dispatch and settlement, under the courier lock.
"""

import json
from datetime import datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text, ValueObject

from dispatch.courier.events import (
    CourierLocationUpdated,
    CourierPayoutAccountUpdated,
    CourierRated,
    CourierRegistered,
    CourierSettingsUpdated,
    CourierSlotReleased,
    CourierSlotReserved,
)
from dispatch.domain import dispatch
from dispatch.errors import CourierAtCapacity
from dispatch.shared.geo import GeoPoint
from dispatch.shared.payout_account import PayoutAccount
from dispatch.utils.clock import as_utc, utcnow

DEFAULT_RADIUS_KM = 10.0
DEFAULT_RATING = 5.0


@dispatch.aggregate
class Courier:
    """A person fulfilling deliveries; identity comes from the account service."""

    account_id = Identifier(required=True)
    display_name = String(required=True, max_length=255)
    phone = String(max_length=20)
    location = ValueObject(GeoPoint)
    is_online = Boolean(default=False)
    last_location_update = DateTime()
    max_delivery_radius_km = Float(default=DEFAULT_RADIUS_KM, min_value=0.0)
    max_active_jobs = Integer(default=1, min_value=1)
    active_order_ids = Text(default="[]")  # JSON list of orders holding a slot
    total_deliveries = Integer(default=0, min_value=0)
    rating = Float(default=DEFAULT_RATING, min_value=0.0, max_value=5.0)
    rating_count = Integer(default=0, min_value=0)
    payout_account = ValueObject(PayoutAccount)
    registered_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def active_jobs_within_capacity(self):
        if len(self.active_jobs) > (self.max_active_jobs or 1):
            raise ValidationError({"active_order_ids": ["Courier holds more jobs than its capacity"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        account_id: str,
        display_name: str,
        phone: str | None = None,
        max_delivery_radius_km: float | None = None,
        max_active_jobs: int = 1,
        now: datetime | None = None,
    ):
        now = now or utcnow()
        courier = cls(
            id=str(account_id),
            account_id=str(account_id),
            display_name=display_name,
            phone=phone,
            is_online=False,
            max_delivery_radius_km=max_delivery_radius_km or DEFAULT_RADIUS_KM,
            max_active_jobs=max_active_jobs or 1,
            active_order_ids="[]",
            total_deliveries=0,
            rating=DEFAULT_RATING,
            rating_count=0,
            registered_at=now,
            updated_at=now,
        )
        courier.raise_(
            CourierRegistered(
                courier_id=str(courier.id),
                display_name=display_name,
                max_delivery_radius_km=courier.max_delivery_radius_km,
                max_active_jobs=courier.max_active_jobs,
                registered_at=now,
            )
        )
        return courier

    # -------------------------------------------------------------------
    # Capacity
    # -------------------------------------------------------------------
    @property
    def active_jobs(self) -> list[str]:
        return json.loads(self.active_order_ids) if self.active_order_ids else []

    def capacity(self, multi_job_capacity: bool) -> int:
        """Slots available to this courier under the configured policy."""
        return max(self.max_active_jobs or 1, 1) if multi_job_capacity else 1

    def has_free_slot(self, multi_job_capacity: bool) -> bool:
        return len(self.active_jobs) < self.capacity(multi_job_capacity)

    def holds(self, order_id: str) -> bool:
        return str(order_id) in self.active_jobs

    def _touch(self, now: datetime) -> None:
        current = as_utc(self.updated_at)
        if current is None or as_utc(now) > current:
            self.updated_at = now

    def reserve_slot(self, order_id: str, multi_job_capacity: bool, now: datetime | None = None) -> None:
        """Take a capacity slot for an order; at capacity the reservation is refused."""
        order_id = str(order_id)
        if self.holds(order_id):
            return
        if not self.has_free_slot(multi_job_capacity):
            raise CourierAtCapacity(f"Courier {self.id} has no free capacity slot")

        now = now or utcnow()
        jobs = self.active_jobs + [order_id]
        self.active_order_ids = json.dumps(jobs)
        self._touch(now)
        self.raise_(
            CourierSlotReserved(
                courier_id=str(self.id),
                order_id=order_id,
                active_jobs=len(jobs),
                reserved_at=now,
            )
        )

    def release_slot(self, order_id: str, completed: bool = False, now: datetime | None = None) -> bool:
        """Give back the slot held for an order, counting the delivery if it completed.

        Returns False when the courier held no slot for the order.
        """
        order_id = str(order_id)
        if not self.holds(order_id):
            return False

        now = now or utcnow()
        jobs = [o for o in self.active_jobs if o != order_id]
        self.active_order_ids = json.dumps(jobs)
        if completed:
            self.total_deliveries = (self.total_deliveries or 0) + 1
        self._touch(now)
        self.raise_(
            CourierSlotReleased(
                courier_id=str(self.id),
                order_id=order_id,
                active_jobs=len(jobs),
                completed=completed,
                total_deliveries=self.total_deliveries,
                released_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Heartbeat
    # -------------------------------------------------------------------
    def record_heartbeat(
        self,
        reported_at: datetime,
        latitude: float | None = None,
        longitude: float | None = None,
        is_online: bool | None = None,
    ) -> bool:
        """Apply a heartbeat. Returns False when it is older than the last one applied."""
        last = as_utc(self.last_location_update)
        if last is not None and as_utc(reported_at) <= last:
            return False

        if latitude is not None and longitude is not None:
            self.location = GeoPoint(latitude=latitude, longitude=longitude)
        if is_online is not None:
            self.is_online = is_online
        self.last_location_update = reported_at
        self._touch(reported_at)
        self.raise_(
            CourierLocationUpdated(
                courier_id=str(self.id),
                latitude=self.location.latitude if self.location else None,
                longitude=self.location.longitude if self.location else None,
                is_online=bool(self.is_online),
                reported_at=reported_at,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Admin and settlement
    # -------------------------------------------------------------------
    def update_settings(
        self,
        max_delivery_radius_km: float | None = None,
        max_active_jobs: int | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or utcnow()
        if max_delivery_radius_km is not None:
            self.max_delivery_radius_km = max_delivery_radius_km
        if max_active_jobs is not None:
            if max_active_jobs < len(self.active_jobs):
                raise ValidationError({"max_active_jobs": ["Cannot drop capacity below the jobs currently held"]})
            self.max_active_jobs = max_active_jobs
        self._touch(now)
        self.raise_(
            CourierSettingsUpdated(
                courier_id=str(self.id),
                max_delivery_radius_km=self.max_delivery_radius_km,
                max_active_jobs=self.max_active_jobs,
                updated_at=now,
            )
        )

    def rate(self, order_id: str, score: int, now: datetime | None = None) -> None:
        """Fold a buyer's 1-5 score into the running average."""
        if not 1 <= score <= 5:
            raise ValidationError({"score": ["Score must be between 1 and 5"]})

        now = now or utcnow()
        count = self.rating_count or 0
        current = self.rating if count else 0.0
        self.rating = round((current * count + score) / (count + 1), 2)
        self.rating_count = count + 1
        self._touch(now)
        self.raise_(
            CourierRated(
                courier_id=str(self.id),
                order_id=str(order_id),
                score=score,
                rating=self.rating,
                rating_count=self.rating_count,
                rated_at=now,
            )
        )

    def update_payout_account(self, account: PayoutAccount, now: datetime | None = None) -> None:
        now = now or utcnow()
        self.payout_account = account
        self._touch(now)
        self.raise_(
            CourierPayoutAccountUpdated(
                courier_id=str(self.id),
                bank_name=account.bank_name,
                mobile_money_number=account.mobile_money_number,
                updated_at=now,
            )
        )
