"""Dispatch core FastAPI application.

Web server that processes dispatch commands synchronously via HTTP. Every
request under a dispatch prefix is wrapped in the dispatch domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - unset/"test" → event_processing = "sync"  (handlers fire in the UoW)
#   - "production" → event_processing = "async" (handlers fire via Engine)
from dispatch.domain import dispatch  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from dispatch.utils.locks import LockBusy

dispatch.init()

_DISPATCH_PREFIXES = ("/orders", "/couriers", "/verification", "/earnings", "/payouts", "/maintenance")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Dispatch Core API",
    description="Courier matching, proof of delivery and earnings settlement",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.exception_handler(LockBusy)
async def lock_busy_handler(request: Request, exc: LockBusy):
    """A contended record is a retryable conflict, not a server error."""
    return JSONResponse(status_code=409, content={"detail": {"error": "Busy", "message": str(exc)}})


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the dispatch domain context for dispatch routes."""
    if request.url.path.startswith(_DISPATCH_PREFIXES):
        with dispatch.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs, etc.
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from dispatch.api import (  # noqa: E402
    courier_router,
    earnings_router,
    maintenance_router,
    order_router,
    payout_router,
    verification_router,
)

app.include_router(order_router)
app.include_router(courier_router)
app.include_router(verification_router)
app.include_router(earnings_router)
app.include_router(payout_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domains": {"dispatch": {"name": dispatch.name}}})
