"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance keeps its own state. State tracks the ids
returned by creation endpoints so follow-up requests can reference them.
"""

from dataclasses import dataclass


@dataclass
class CourierState:
    """A simulated courier that keeps reporting its position."""

    courier_id: str | None = None
    is_online: bool = False


@dataclass
class DeliveryState:
    """Tracks state for a single order on its way to the buyer."""

    order_id: str | None = None
    seller_id: str | None = None
    courier_id: str | None = None
    delivery_id: str | None = None
    current_status: str = "Placed"
