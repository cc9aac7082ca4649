"""Lookups over stored verification codes."""

from protean.utils.globals import current_domain

from dispatch.utils.clock import as_utc
from dispatch.verification.code import CodeStatus, VerificationCode


def codes_for(delivery_id: str, step: str, status: CodeStatus | None = None) -> list[VerificationCode]:
    criteria = {"delivery_id": str(delivery_id), "step": step}
    if status is not None:
        criteria["status"] = status.value
    repo = current_domain.repository_for(VerificationCode)
    return list(repo._dao.query.filter(**criteria).all().items)


def active_code(delivery_id: str, step: str) -> VerificationCode | None:
    """The one live code for a delivery step; issuing supersedes every earlier one."""
    codes = codes_for(delivery_id, step, CodeStatus.ACTIVE)
    return max(codes, key=lambda c: as_utc(c.issued_at)) if codes else None


def latest_code(delivery_id: str, step: str) -> VerificationCode | None:
    """The most recently issued code for a delivery step, whatever its status."""
    codes = codes_for(delivery_id, step)
    if not codes:
        return None
    return max(codes, key=lambda c: as_utc(c.issued_at))


def lapsed_active_codes(as_of) -> list[VerificationCode]:
    repo = current_domain.repository_for(VerificationCode)
    active = repo._dao.query.filter(status=CodeStatus.ACTIVE.value).all().items
    return [c for c in active if c.is_lapsed(as_of)]
