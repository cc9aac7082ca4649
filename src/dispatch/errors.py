"""Typed failures for the dispatch core.

Aggregates raise the ``DispatchRuleViolation`` subclasses below; they are
Protean ``ValidationError``s, so anything that already handles validation
failures keeps working. Command handlers that implement state transitions
catch them and return an ``Outcome`` instead, which makes every transition a
total function: the caller always gets a value back and branches on
``outcome.error``.
"""

from dataclasses import dataclass, field
from enum import Enum

from protean.exceptions import ValidationError


class ErrorKind(Enum):
    INVALID_TRANSITION = "InvalidTransition"
    ALREADY_ASSIGNED = "AlreadyAssigned"
    VERIFICATION_FAILED = "VerificationFailed"
    NO_ELIGIBLE_COURIER = "NoEligibleCourier"
    PAYOUT_CONFLICT = "PayoutConflict"
    NOT_FOUND = "NotFound"
    BUSY = "Busy"


class VerificationFailure(Enum):
    EXPIRED = "Expired"
    MISMATCH = "Mismatch"


# ---------------------------------------------------------------------------
# Exceptions raised by aggregates
# ---------------------------------------------------------------------------
class DispatchRuleViolation(ValidationError):
    kind: ErrorKind = ErrorKind.INVALID_TRANSITION
    field_name = "status"

    def __init__(self, message: str):
        super().__init__({self.field_name: [message]})
        self.message = message


class InvalidTransition(DispatchRuleViolation):
    kind = ErrorKind.INVALID_TRANSITION


class AlreadyAssigned(DispatchRuleViolation):
    kind = ErrorKind.ALREADY_ASSIGNED
    field_name = "assigned_courier_id"


class CourierAtCapacity(AlreadyAssigned):
    field_name = "courier"


class VerificationFailed(DispatchRuleViolation):
    kind = ErrorKind.VERIFICATION_FAILED
    field_name = "code"

    def __init__(self, reason: VerificationFailure, message: str | None = None):
        super().__init__(message or f"Verification failed: {reason.value}")
        self.reason = reason


class PayoutConflict(DispatchRuleViolation):
    kind = ErrorKind.PAYOUT_CONFLICT
    field_name = "payout"


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Outcome:
    """Result of a state transition or dispatch decision."""

    ok: bool
    error: ErrorKind | None = None
    reason: VerificationFailure | None = None
    message: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def success(cls, **data) -> "Outcome":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        message: str | None = None,
        reason: VerificationFailure | None = None,
        **data,
    ) -> "Outcome":
        return cls(ok=False, error=error, reason=reason, message=message, data=data)

    @classmethod
    def from_violation(cls, exc: DispatchRuleViolation, **data) -> "Outcome":
        return cls.failure(exc.kind, exc.message, getattr(exc, "reason", None), **data)

    @classmethod
    def not_found(cls, what: str, identifier) -> "Outcome":
        return cls.failure(ErrorKind.NOT_FOUND, f"{what} {identifier} not found")
