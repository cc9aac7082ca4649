"""Dispatch bounded context — Courier Matching, Proof of Delivery and Settlement.

Assigns approved orders to nearby online couriers, proves pickup and handover
through single-use QR/OTP codes, and settles seller and courier earnings into
payouts once a delivery completes. Uses CQRS: every aggregate is persisted as
current state and every status change is published as a domain event.
"""

from protean.domain import Domain

from dispatch.utils.logging import configure_logging

configure_logging()

dispatch = Domain(name="dispatch")
