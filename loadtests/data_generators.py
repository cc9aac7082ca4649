"""Faker-based data generators for the dispatch load test scenarios.

Payloads match the field names of the API's Pydantic request schemas.
Coordinates are scattered around a single city centre so that couriers
and sellers land inside each other's delivery radius.
"""

import random
import uuid

from faker import Faker

fake = Faker()

CITY_CENTRE = (9.0300, 38.7400)


def _near(origin: tuple[float, float], spread: float = 0.03) -> tuple[float, float]:
    return (
        round(origin[0] + random.uniform(-spread, spread), 6),
        round(origin[1] + random.uniform(-spread, spread), 6),
    )


def unique_id(prefix: str) -> str:
    """Generate ids like 'courier-LT-a1b2c3d4'."""
    return f"{prefix}-LT-{uuid.uuid4().hex[:8]}"


def mobile_money_number() -> str:
    return f"+2519{random.randint(10_000_000, 99_999_999)}"


def courier_data() -> dict:
    """RegisterCourierRequest payload."""
    return {
        "courier_id": unique_id("courier"),
        "display_name": fake.first_name()[:100],
        "phone": mobile_money_number(),
        "max_active_jobs": random.choice([1, 1, 2]),
    }


def heartbeat_data(near: tuple[float, float] = CITY_CENTRE, is_online: bool = True) -> dict:
    latitude, longitude = _near(near, spread=0.01)
    return {"latitude": latitude, "longitude": longitude, "is_online": is_online}


def order_data(seller_id: str | None = None, delivery_type: str = "platform") -> dict:
    """PlaceOrderRequest payload with seller and buyer a few kilometres apart."""
    seller_latitude, seller_longitude = _near(CITY_CENTRE)
    buyer_latitude, buyer_longitude = _near((seller_latitude, seller_longitude))
    return {
        "buyer_id": unique_id("buyer"),
        "seller_id": seller_id or unique_id("seller"),
        "total_amount": round(random.uniform(150.0, 5000.0), 2),
        "delivery_type": delivery_type,
        "seller_latitude": seller_latitude,
        "seller_longitude": seller_longitude,
        "buyer_latitude": buyer_latitude,
        "buyer_longitude": buyer_longitude,
    }


def cancellation_reason() -> str:
    return random.choice(["Out of stock", "Buyer changed their mind", "Duplicate order", fake.sentence()[:200]])
