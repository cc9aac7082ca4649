"""Verification code domain events.

None of these carry the plaintext secret. It exists only in the issuance
response and in the notifier call that hands it to its recipient.
"""

from protean.fields import DateTime, Identifier, Integer, String

from dispatch.domain import dispatch


@dispatch.event(part_of="VerificationCode")
class VerificationCodeIssued:
    __version__ = 1

    code_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    step = String(required=True)
    method = String(required=True)
    recipient_id = Identifier()
    expires_at = DateTime(required=True)
    issued_at = DateTime(required=True)


@dispatch.event(part_of="VerificationCode")
class VerificationCodeConsumed:
    __version__ = 1

    code_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    step = String(required=True)
    consumed_at = DateTime(required=True)


@dispatch.event(part_of="VerificationCode")
class VerificationCodeRejected:
    """A wrong secret was presented against an active code."""

    __version__ = 1

    code_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    step = String(required=True)
    failed_attempts = Integer(required=True)
    rejected_at = DateTime(required=True)


@dispatch.event(part_of="VerificationCode")
class VerificationCodeExpired:
    """The code can no longer be used; a new one must be issued."""

    __version__ = 1

    code_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    order_id = Identifier(required=True)
    step = String(required=True)
    reason = String(required=True)  # ExpiryReason value
    expired_at = DateTime(required=True)


@dispatch.event(part_of="VerificationCode")
class VerificationCodeSuperseded:
    __version__ = 1

    code_id = Identifier(required=True)
    delivery_id = Identifier(required=True)
    step = String(required=True)
    superseded_at = DateTime(required=True)
