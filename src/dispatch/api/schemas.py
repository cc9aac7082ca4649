"""Pydantic API schemas for the dispatch core.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    order_id: str | None = None
    buyer_id: str
    seller_id: str
    total_amount: float = Field(ge=0)
    order_type: str = "regular"
    delivery_type: str = "platform"
    seller_latitude: float | None = None
    seller_longitude: float | None = None
    buyer_latitude: float | None = None
    buyer_longitude: float | None = None
    delivery_fee: float | None = None


class ConfirmPaymentRequest(BaseModel):
    payment_status: str


class ApproveOrderRequest(BaseModel):
    approved_by: str | None = None


class AssignCourierRequest(BaseModel):
    courier_id: str
    verification_method: str = "otp"


class SecretRequest(BaseModel):
    secret: str


class ReasonRequest(BaseModel):
    reason: str


class RateCourierRequest(BaseModel):
    score: int = Field(ge=1, le=5)


class RegisterCourierRequest(BaseModel):
    courier_id: str
    display_name: str
    phone: str | None = None
    max_delivery_radius_km: float | None = None
    max_active_jobs: int = 1


class UpdateCourierSettingsRequest(BaseModel):
    max_delivery_radius_km: float | None = None
    max_active_jobs: int | None = None


class HeartbeatRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    is_online: bool | None = None
    reported_at: datetime | None = None


class PayoutAccountRequest(BaseModel):
    bank_name: str | None = None
    account_name: str | None = None
    account_number: str | None = None
    mobile_money_number: str | None = None


class IssueCodeRequest(BaseModel):
    delivery_id: str
    order_id: str
    step: str
    method: str
    recipient_id: str | None = None
    ttl_minutes: int | None = None


class ReissueCodeRequest(BaseModel):
    delivery_id: str
    step: str
    ttl_minutes: int | None = None


class ValidateCodeRequest(BaseModel):
    delivery_id: str
    step: str
    secret: str


class HoldEarningsRequest(BaseModel):
    reason: str | None = None


class RequestPayoutRequest(PayoutAccountRequest):
    payee_id: str
    payee_type: str
    amount: float | None = None
    notes: str | None = None


class ApprovePayoutRequest(BaseModel):
    approved_by: str | None = None


class StartProcessingRequest(BaseModel):
    processed_by: str | None = None


class CompletePayoutRequest(BaseModel):
    transaction_reference: str | None = None
    payment_proof_url: str | None = None


class SweepRequest(BaseModel):
    as_of: datetime | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class OutcomeResponse(BaseModel):
    ok: bool
    data: dict = {}


class OrderResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    delivery_type: str
    assigned_courier_id: str | None = None
    delivery_id: str | None = None
    delivery_status: str | None = None
    total_amount: float
    delivery_fee: float | None = None


class CourierResponse(BaseModel):
    courier_id: str
    display_name: str
    is_online: bool
    latitude: float | None = None
    longitude: float | None = None
    last_location_update: datetime | None = None
    max_delivery_radius_km: float
    max_active_jobs: int
    active_jobs: list[str]
    total_deliveries: int
    rating: float


class PayoutResponse(BaseModel):
    payout_id: str
    payee_id: str
    payee_type: str
    amount: float
    status: str
    entry_ids: list[str]
    transaction_reference: str | None = None
    rejection_reason: str | None = None
    failure_reason: str | None = None
