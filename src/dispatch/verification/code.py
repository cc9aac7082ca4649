"""VerificationCode aggregate — single-use proof-of-possession codes.

A code authorizes one step (pickup or delivery) of one delivery. Only an
HMAC-SHA256 digest of the secret is stored, keyed with a server-side pepper and
bound to ``delivery_id:step`` so a digest cannot be replayed against another
delivery or step.

State Machine:
    ACTIVE → CONSUMED    (matched once)
    ACTIVE → SUPERSEDED  (a newer code was issued for the same delivery+step)
    ACTIVE → EXPIRED     (lapsed, or too many wrong attempts)
"""

import hashlib
import hmac
import secrets
import string
from datetime import datetime, timedelta
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from dispatch.domain import dispatch
from dispatch.errors import InvalidTransition
from dispatch.utils.clock import as_utc, utcnow
from dispatch.verification.events import (
    VerificationCodeConsumed,
    VerificationCodeExpired,
    VerificationCodeIssued,
    VerificationCodeRejected,
    VerificationCodeSuperseded,
)


class VerificationStep(Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class VerificationMethod(Enum):
    QR = "qr"
    OTP = "otp"


class CodeStatus(Enum):
    ACTIVE = "Active"
    CONSUMED = "Consumed"
    SUPERSEDED = "Superseded"
    EXPIRED = "Expired"


class ExpiryReason(Enum):
    LAPSED = "lapsed"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    ORDER_CLOSED = "order_closed"


# ---------------------------------------------------------------------------
# Secrets and digests
# ---------------------------------------------------------------------------
QR_TOKEN_BYTES = 32


def generate_secret(method: str, otp_length: int = 6) -> str:
    if VerificationMethod(method) == VerificationMethod.QR:
        return secrets.token_urlsafe(QR_TOKEN_BYTES)
    return "".join(secrets.choice(string.digits) for _ in range(otp_length))


def digest_secret(pepper: str, delivery_id: str, step: str, secret: str) -> str:
    message = f"{delivery_id}:{step}:{secret.strip()}".encode()
    return hmac.new(pepper.encode(), message, hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@dispatch.aggregate
class VerificationCode:
    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    step = String(required=True, max_length=10, choices=VerificationStep)
    method = String(required=True, max_length=10, choices=VerificationMethod)
    recipient_id = Identifier()
    code_hash = String(required=True, max_length=64)
    status = String(max_length=20, choices=CodeStatus, default=CodeStatus.ACTIVE.value)
    failed_attempts = Integer(default=0, min_value=0)
    issued_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    consumed_at = DateTime()
    closed_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def issue(
        cls,
        delivery_id: str,
        order_id: str,
        step: str,
        method: str,
        code_hash: str,
        ttl: timedelta,
        recipient_id: str | None = None,
        now: datetime | None = None,
    ):
        now = now or utcnow()
        code = cls(
            delivery_id=delivery_id,
            order_id=order_id,
            step=step,
            method=method,
            recipient_id=recipient_id,
            code_hash=code_hash,
            status=CodeStatus.ACTIVE.value,
            failed_attempts=0,
            issued_at=now,
            expires_at=now + ttl,
            updated_at=now,
        )
        code.raise_(
            VerificationCodeIssued(
                code_id=str(code.id),
                delivery_id=str(delivery_id),
                order_id=str(order_id),
                step=step,
                method=method,
                recipient_id=str(recipient_id) if recipient_id else None,
                expires_at=code.expires_at,
                issued_at=now,
            )
        )
        return code

    @property
    def is_active(self) -> bool:
        return self.status == CodeStatus.ACTIVE.value

    def is_lapsed(self, now: datetime) -> bool:
        return as_utc(now) > as_utc(self.expires_at)

    def matches(self, pepper: str, secret: str) -> bool:
        presented = digest_secret(pepper, str(self.delivery_id), self.step, secret or "")
        return hmac.compare_digest(presented, self.code_hash)

    def _assert_active(self) -> None:
        if not self.is_active:
            raise InvalidTransition(f"Verification code is {self.status}")

    def consume(self, now: datetime | None = None) -> None:
        self._assert_active()
        now = now or utcnow()
        self.status = CodeStatus.CONSUMED.value
        self.consumed_at = now
        self.closed_at = now
        self.updated_at = now
        self.raise_(
            VerificationCodeConsumed(
                code_id=str(self.id),
                delivery_id=str(self.delivery_id),
                order_id=str(self.order_id),
                step=self.step,
                consumed_at=now,
            )
        )

    def record_mismatch(self, max_attempts: int, now: datetime | None = None) -> bool:
        """Count a wrong secret. Returns True when the code is burned as a result."""
        self._assert_active()
        now = now or utcnow()
        self.failed_attempts = (self.failed_attempts or 0) + 1
        self.updated_at = now
        self.raise_(
            VerificationCodeRejected(
                code_id=str(self.id),
                delivery_id=str(self.delivery_id),
                step=self.step,
                failed_attempts=self.failed_attempts,
                rejected_at=now,
            )
        )
        if max_attempts and self.failed_attempts >= max_attempts:
            self.expire(ExpiryReason.ATTEMPTS_EXHAUSTED, now=now)
            return True
        return False

    def expire(self, reason: ExpiryReason = ExpiryReason.LAPSED, now: datetime | None = None) -> None:
        self._assert_active()
        now = now or utcnow()
        self.status = CodeStatus.EXPIRED.value
        self.closed_at = now
        self.updated_at = now
        self.raise_(
            VerificationCodeExpired(
                code_id=str(self.id),
                delivery_id=str(self.delivery_id),
                order_id=str(self.order_id),
                step=self.step,
                reason=reason.value,
                expired_at=now,
            )
        )

    def supersede(self, now: datetime | None = None) -> None:
        self._assert_active()
        now = now or utcnow()
        self.status = CodeStatus.SUPERSEDED.value
        self.closed_at = now
        self.updated_at = now
        self.raise_(
            VerificationCodeSuperseded(
                code_id=str(self.id),
                delivery_id=str(self.delivery_id),
                step=self.step,
                superseded_at=now,
            )
        )
