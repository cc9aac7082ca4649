"""FastAPI routes for the dispatch core.

Every state change goes through a domain command processed synchronously
under the keyed locks it needs. Typed failures come back as ``Outcome``s and
are mapped to HTTP errors here: 404 for unknown records, 409 for conflicts
(already assigned, payout conflict, busy), 422 for rejected transitions and
verification failures.

Routes that take locks are plain functions so FastAPI runs them on its
threadpool and a contended lock never blocks the event loop.
"""

from fastapi import APIRouter, HTTPException, Query
from protean.utils.globals import current_domain

from dispatch.api.schemas import (
    ApproveOrderRequest,
    ApprovePayoutRequest,
    AssignCourierRequest,
    CompletePayoutRequest,
    ConfirmPaymentRequest,
    CourierResponse,
    HeartbeatRequest,
    HoldEarningsRequest,
    IssueCodeRequest,
    OrderResponse,
    OutcomeResponse,
    PayoutAccountRequest,
    PayoutResponse,
    PlaceOrderRequest,
    RateCourierRequest,
    ReasonRequest,
    RegisterCourierRequest,
    ReissueCodeRequest,
    RequestPayoutRequest,
    SecretRequest,
    StartProcessingRequest,
    SweepRequest,
    UpdateCourierSettingsRequest,
    ValidateCodeRequest,
)
from dispatch.courier.account import UpdatePayoutAccount
from dispatch.courier.courier import Courier
from dispatch.courier.heartbeat import RecordHeartbeat
from dispatch.courier.rating import RateCourier
from dispatch.courier.registration import RegisterCourier, UpdateCourierSettings
from dispatch.errors import ErrorKind, Outcome
from dispatch.ledger.holds import HoldEarnings, ReleaseHold, process_for_entry
from dispatch.ledger.payout import Payout
from dispatch.ledger.payouts import (
    ApprovePayout,
    CompletePayout,
    FailPayout,
    RejectPayout,
    StartPayoutProcessing,
    process_for_payout,
    request_payout,
)
from dispatch.ledger.release import ReleaseMaturedEarnings
from dispatch.ledger.summary import earnings_summary
from dispatch.matching.matcher import DispatchOrder
from dispatch.matching.nearby import find_nearby_couriers
from dispatch.matching.sweep import SweepUnassignedOrders
from dispatch.order.approval import ApproveOrder
from dispatch.order.assignment import mark_assigned
from dispatch.order.cancellation import cancel_order
from dispatch.order.failure import fail_delivery
from dispatch.order.handover import confirm_delivery
from dispatch.order.locking import process_for_order
from dispatch.order.order import Order
from dispatch.order.payment import ConfirmPayment
from dispatch.order.pickup import confirm_pickup
from dispatch.order.placement import PlaceOrder
from dispatch.projections.delivery_audit_log import DeliveryAuditLog
from dispatch.projections.payout_queue import PayoutQueueView
from dispatch.utils.locks import code_key, courier_key, serialized_process
from dispatch.verification.expiry import ExpireVerificationCodes
from dispatch.verification.issuance import IssueVerificationCode, ReissueVerificationCode
from dispatch.verification.validation import ValidateVerificationCode

_STATUS_FOR_ERROR = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_ASSIGNED: 409,
    ErrorKind.PAYOUT_CONFLICT: 409,
    ErrorKind.BUSY: 409,
    ErrorKind.NO_ELIGIBLE_COURIER: 409,
    ErrorKind.INVALID_TRANSITION: 422,
    ErrorKind.VERIFICATION_FAILED: 422,
}


def _respond(outcome: Outcome) -> OutcomeResponse:
    if outcome.ok:
        return OutcomeResponse(ok=True, data=outcome.data)
    detail = {"error": outcome.error.value, "message": outcome.message, **outcome.data}
    if outcome.reason is not None:
        detail["reason"] = outcome.reason.value
    raise HTTPException(status_code=_STATUS_FOR_ERROR.get(outcome.error, 422), detail=detail)


def _order_response(order: Order) -> OrderResponse:
    delivery = order.delivery
    return OrderResponse(
        order_id=str(order.id),
        status=order.status,
        payment_status=order.payment_status,
        delivery_type=order.delivery_type,
        assigned_courier_id=str(order.assigned_courier_id) if order.assigned_courier_id else None,
        delivery_id=str(delivery.id) if delivery else None,
        delivery_status=delivery.status if delivery else None,
        total_amount=order.total_amount,
        delivery_fee=order.delivery_fee,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OutcomeResponse)
async def place_order(body: PlaceOrderRequest) -> OutcomeResponse:
    """Register an order handed over by the buyer transaction."""
    command = PlaceOrder(**body.model_dump(exclude_none=True))
    return _respond(current_domain.process(command, asynchronous=False))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.get("/{order_id}/audit")
async def get_delivery_audit(order_id: str) -> list[dict]:
    """Delivery status trail for an order, oldest first."""
    repo = current_domain.repository_for(DeliveryAuditLog)
    entries = repo._dao.query.filter(order_id=order_id).all().items
    return [
        {
            "event_type": e.event_type,
            "delivery_status": e.delivery_status,
            "courier_id": e.courier_id,
            "description": e.description,
            "occurred_at": e.occurred_at.isoformat(),
        }
        for e in sorted(entries, key=lambda e: e.occurred_at)
    ]


@order_router.put("/{order_id}/payment", response_model=OutcomeResponse)
def confirm_payment(order_id: str, body: ConfirmPaymentRequest) -> OutcomeResponse:
    """Payment collaborator's confirmation; approves the order when auto-approval is on."""
    command = ConfirmPayment(order_id=order_id, payment_status=body.payment_status)
    return _respond(process_for_order(command, order_id))


@order_router.put("/{order_id}/approve", response_model=OutcomeResponse)
def approve_order(order_id: str, body: ApproveOrderRequest) -> OutcomeResponse:
    command = ApproveOrder(order_id=order_id, approved_by=body.approved_by)
    return _respond(process_for_order(command, order_id))


@order_router.put("/{order_id}/dispatch", response_model=OutcomeResponse)
def dispatch_order(order_id: str) -> OutcomeResponse:
    """Run the matcher for an approved platform order now."""
    return _respond(current_domain.process(DispatchOrder(order_id=order_id), asynchronous=False))


@order_router.put("/{order_id}/assign", response_model=OutcomeResponse)
def assign_courier(order_id: str, body: AssignCourierRequest) -> OutcomeResponse:
    """Assign a specific courier (or, for seller deliveries, the seller)."""
    return _respond(mark_assigned(order_id, body.courier_id, verification_method=body.verification_method))


@order_router.put("/{order_id}/pickup", response_model=OutcomeResponse)
def pickup(order_id: str, body: SecretRequest) -> OutcomeResponse:
    return _respond(confirm_pickup(order_id, body.secret))


@order_router.put("/{order_id}/deliver", response_model=OutcomeResponse)
def deliver(order_id: str, body: SecretRequest) -> OutcomeResponse:
    return _respond(confirm_delivery(order_id, body.secret))


@order_router.put("/{order_id}/cancel", response_model=OutcomeResponse)
def cancel(order_id: str, body: ReasonRequest) -> OutcomeResponse:
    return _respond(cancel_order(order_id, body.reason))


@order_router.put("/{order_id}/fail", response_model=OutcomeResponse)
def fail(order_id: str, body: ReasonRequest) -> OutcomeResponse:
    return _respond(fail_delivery(order_id, body.reason))


@order_router.put("/{order_id}/rating", response_model=OutcomeResponse)
def rate_courier(order_id: str, body: RateCourierRequest) -> OutcomeResponse:
    return _respond(process_for_order(RateCourier(order_id=order_id, score=body.score), order_id, with_courier=True))


# ---------------------------------------------------------------------------
# Courier Router
# ---------------------------------------------------------------------------
courier_router = APIRouter(prefix="/couriers", tags=["couriers"])


@courier_router.post("", status_code=201, response_model=OutcomeResponse)
def register_courier(body: RegisterCourierRequest) -> OutcomeResponse:
    command = RegisterCourier(**body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, courier_key(body.courier_id)))


@courier_router.get("/nearby", response_model=OutcomeResponse)
async def nearby_couriers(
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    radius_km: float | None = Query(default=None, gt=0),
    include_busy: bool = False,
    limit: int = Query(default=20, ge=1, le=100),
) -> OutcomeResponse:
    return _respond(find_nearby_couriers(latitude, longitude, radius_km, include_busy, limit))


@courier_router.get("/{courier_id}", response_model=CourierResponse)
async def get_courier(courier_id: str) -> CourierResponse:
    courier = current_domain.repository_for(Courier).get(courier_id)
    return CourierResponse(
        courier_id=str(courier.id),
        display_name=courier.display_name,
        is_online=courier.is_online,
        latitude=courier.location.latitude if courier.location else None,
        longitude=courier.location.longitude if courier.location else None,
        last_location_update=courier.last_location_update,
        max_delivery_radius_km=courier.max_delivery_radius_km,
        max_active_jobs=courier.max_active_jobs,
        active_jobs=courier.active_jobs,
        total_deliveries=courier.total_deliveries,
        rating=courier.rating,
    )


@courier_router.put("/{courier_id}/settings", response_model=OutcomeResponse)
def update_settings(courier_id: str, body: UpdateCourierSettingsRequest) -> OutcomeResponse:
    command = UpdateCourierSettings(courier_id=courier_id, **body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, courier_key(courier_id)))


@courier_router.put("/{courier_id}/heartbeat", response_model=OutcomeResponse)
def heartbeat(courier_id: str, body: HeartbeatRequest) -> OutcomeResponse:
    """Location/availability from the courier's device; stale heartbeats are ignored."""
    command = RecordHeartbeat(courier_id=courier_id, **body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, courier_key(courier_id)))


@courier_router.put("/{courier_id}/payout-account", response_model=OutcomeResponse)
def update_payout_account(courier_id: str, body: PayoutAccountRequest) -> OutcomeResponse:
    command = UpdatePayoutAccount(courier_id=courier_id, **body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, courier_key(courier_id)))


# ---------------------------------------------------------------------------
# Verification Router
# ---------------------------------------------------------------------------
verification_router = APIRouter(prefix="/verification", tags=["verification"])


@verification_router.post("/codes", status_code=201, response_model=OutcomeResponse)
def issue_code(body: IssueCodeRequest) -> OutcomeResponse:
    """Issue a code; the plaintext secret appears only in this response."""
    command = IssueVerificationCode(**body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, code_key(body.delivery_id, body.step)))


@verification_router.post("/codes/reissue", status_code=201, response_model=OutcomeResponse)
def reissue_code(body: ReissueCodeRequest) -> OutcomeResponse:
    command = ReissueVerificationCode(**body.model_dump(exclude_none=True))
    return _respond(serialized_process(command, code_key(body.delivery_id, body.step)))


@verification_router.post("/codes/validate", response_model=OutcomeResponse)
def validate_code(body: ValidateCodeRequest) -> OutcomeResponse:
    command = ValidateVerificationCode(**body.model_dump())
    return _respond(serialized_process(command, code_key(body.delivery_id, body.step)))


# ---------------------------------------------------------------------------
# Earnings Router
# ---------------------------------------------------------------------------
earnings_router = APIRouter(prefix="/earnings", tags=["earnings"])


@earnings_router.get("/{payee_id}")
async def get_earnings(payee_id: str) -> dict:
    return earnings_summary(payee_id)


@earnings_router.put("/entries/{entry_id}/hold", response_model=OutcomeResponse)
def hold_entry(entry_id: str, body: HoldEarningsRequest) -> OutcomeResponse:
    return _respond(process_for_entry(HoldEarnings(entry_id=entry_id, reason=body.reason)))


@earnings_router.put("/entries/{entry_id}/release-hold", response_model=OutcomeResponse)
def release_hold(entry_id: str) -> OutcomeResponse:
    return _respond(process_for_entry(ReleaseHold(entry_id=entry_id)))


# ---------------------------------------------------------------------------
# Payout Router
# ---------------------------------------------------------------------------
payout_router = APIRouter(prefix="/payouts", tags=["payouts"])


@payout_router.post("", status_code=201, response_model=OutcomeResponse)
def create_payout(body: RequestPayoutRequest) -> OutcomeResponse:
    fields = body.model_dump(exclude_none=True)
    return _respond(request_payout(fields.pop("payee_id"), fields.pop("payee_type"), **fields))


@payout_router.get("/queue")
async def payout_queue(status: str = "Pending") -> list[dict]:
    """Operator work list, oldest request first."""
    repo = current_domain.repository_for(PayoutQueueView)
    rows = repo._dao.query.filter(status=status).all().items
    return [
        {
            "payout_id": r.payout_id,
            "payee_id": r.payee_id,
            "payee_type": r.payee_type,
            "amount": r.amount,
            "channel": r.channel,
            "requested_at": r.requested_at.isoformat() if r.requested_at else None,
        }
        for r in sorted(rows, key=lambda r: r.requested_at)
    ]


@payout_router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: str) -> PayoutResponse:
    payout = current_domain.repository_for(Payout).get(payout_id)
    return PayoutResponse(
        payout_id=str(payout.id),
        payee_id=payout.payee_id,
        payee_type=payout.payee_type,
        amount=payout.amount,
        status=payout.status,
        entry_ids=payout.linked_entry_ids,
        transaction_reference=payout.transaction_reference,
        rejection_reason=payout.rejection_reason,
        failure_reason=payout.failure_reason,
    )


@payout_router.put("/{payout_id}/approve", response_model=OutcomeResponse)
def approve_payout(payout_id: str, body: ApprovePayoutRequest) -> OutcomeResponse:
    return _respond(process_for_payout(ApprovePayout(payout_id=payout_id, approved_by=body.approved_by)))


@payout_router.put("/{payout_id}/process", response_model=OutcomeResponse)
def start_processing(payout_id: str, body: StartProcessingRequest) -> OutcomeResponse:
    return _respond(process_for_payout(StartPayoutProcessing(payout_id=payout_id, processed_by=body.processed_by)))


@payout_router.put("/{payout_id}/complete", response_model=OutcomeResponse)
def complete_payout(payout_id: str, body: CompletePayoutRequest) -> OutcomeResponse:
    command = CompletePayout(payout_id=payout_id, **body.model_dump(exclude_none=True))
    return _respond(process_for_payout(command))


@payout_router.put("/{payout_id}/reject", response_model=OutcomeResponse)
def reject_payout(payout_id: str, body: ReasonRequest) -> OutcomeResponse:
    return _respond(process_for_payout(RejectPayout(payout_id=payout_id, reason=body.reason)))


@payout_router.put("/{payout_id}/fail", response_model=OutcomeResponse)
def fail_payout(payout_id: str, body: ReasonRequest) -> OutcomeResponse:
    return _respond(process_for_payout(FailPayout(payout_id=payout_id, reason=body.reason)))


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/dispatch-sweep", response_model=OutcomeResponse)
def dispatch_sweep(body: SweepRequest) -> OutcomeResponse:
    summary = current_domain.process(SweepUnassignedOrders(as_of=body.as_of), asynchronous=False)
    return OutcomeResponse(ok=True, data=summary)


@maintenance_router.post("/code-expiry", response_model=OutcomeResponse)
def code_expiry(body: SweepRequest) -> OutcomeResponse:
    expired = current_domain.process(ExpireVerificationCodes(as_of=body.as_of), asynchronous=False)
    return OutcomeResponse(ok=True, data={"expired": expired})


@maintenance_router.post("/earnings-release", response_model=OutcomeResponse)
def earnings_release(body: SweepRequest) -> OutcomeResponse:
    released = current_domain.process(ReleaseMaturedEarnings(as_of=body.as_of), asynchronous=False)
    return OutcomeResponse(ok=True, data={"released": released})
