"""Dispatch core API package."""

from dispatch.api.routes import (
    courier_router,
    earnings_router,
    maintenance_router,
    order_router,
    payout_router,
    verification_router,
)

__all__ = [
    "order_router",
    "courier_router",
    "verification_router",
    "earnings_router",
    "payout_router",
    "maintenance_router",
]
