import logging
import threading
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging, load_settings
from .coordinator import ClaimCoordinator
from .errors import ClaimError, StoreUnavailable
from .models import ClaimResponse, ClaimStatus, HistoryResponse
from .pool import CouponPool
from .session_marker import SessionMarkerSigner
from .store import build_store
from .util import client_identity

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    settings = load_settings()
    configure_logging(settings)
    return settings


_coordinator: Optional[ClaimCoordinator] = None
_coordinator_lock = threading.Lock()


def build_coordinator(settings: Settings) -> ClaimCoordinator:
    """Wire the coordinator. Performs no store I/O."""
    on_history_failure = None
    if settings.history_repair_enabled:
        from .tasks import enqueue_history_repair

        on_history_failure = enqueue_history_repair

    return ClaimCoordinator(
        store=build_store(settings),
        pool=CouponPool(settings.coupon_pool),
        signer=SessionMarkerSigner(settings.session_secret, settings.cooldown_seconds),
        cooldown_seconds=settings.cooldown_seconds,
        on_history_failure=on_history_failure,
    )


def get_coordinator(settings: Settings = Depends(get_settings)) -> ClaimCoordinator:
    global _coordinator
    if _coordinator is None:
        with _coordinator_lock:
            if _coordinator is None:
                _coordinator = build_coordinator(settings)
    return _coordinator


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    coordinator = get_coordinator(settings)
    try:
        await run_in_threadpool(coordinator.store.warm_up, settings.store_startup_retries)
    except StoreUnavailable:
        # Keep serving: claims report STORE_UNAVAILABLE until the store is back.
        logger.error("Claim store unreachable at startup; continuing without it")
    yield


app = FastAPI(title="Coupon Claim API", lifespan=lifespan)


REJECTION_MESSAGES = {
    ClaimError.ALREADY_CLAIMED_SESSION: "You have already claimed a coupon in this session.",
    ClaimError.ALREADY_CLAIMED_IDENTITY: "You have already claimed a coupon. Please try again in {retry_after} seconds.",
    ClaimError.POOL_EMPTY: "No coupons available.",
    ClaimError.STORE_UNAVAILABLE: "Could not process your claim right now. Please try again.",
}


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/claim", response_model=ClaimResponse)
def claim_coupon(
    request: Request,
    settings: Settings = Depends(get_settings),
    coordinator: ClaimCoordinator = Depends(get_coordinator),
):
    identity = client_identity(request)
    marker = request.cookies.get(settings.session_cookie_name)

    outcome = coordinator.attempt_claim(identity, marker)

    if outcome.status == ClaimStatus.ASSIGNED:
        response = JSONResponse(
            ClaimResponse(
                message=f"Success! Your coupon is: {outcome.coupon}",
                coupon=outcome.coupon,
            ).model_dump(exclude_none=True)
        )
        response.set_cookie(
            settings.session_cookie_name,
            outcome.session_marker,
            max_age=settings.cooldown_seconds,
            httponly=True,
            samesite="lax",
        )
        return response

    message = REJECTION_MESSAGES[outcome.error].format(retry_after=outcome.retry_after_seconds)
    body = ClaimResponse(
        message=message,
        error=outcome.error,
        retry_after_seconds=outcome.retry_after_seconds,
    ).model_dump(mode="json", exclude_none=True)

    if outcome.error in (ClaimError.ALREADY_CLAIMED_SESSION, ClaimError.ALREADY_CLAIMED_IDENTITY):
        headers = {}
        if outcome.retry_after_seconds is not None:
            headers["Retry-After"] = str(outcome.retry_after_seconds)
        return JSONResponse(body, status_code=429, headers=headers)

    return JSONResponse(body, status_code=500)


@app.get("/history", response_model=HistoryResponse)
def claim_history(request: Request, coordinator: ClaimCoordinator = Depends(get_coordinator)):
    identity = client_identity(request)
    try:
        history = coordinator.history(identity)
    except StoreUnavailable:
        logger.exception("Error fetching coupon history for identity=%s", identity)
        return JSONResponse({"message": "An error occurred while fetching history."}, status_code=500)

    logger.debug("History query for identity=%s returned %s entries", identity, len(history))
    return HistoryResponse(history=history)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error on %s", request.url.path)
    return JSONResponse(
        {"message": "An unexpected error occurred. Please try again."},
        status_code=500,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("coupon_claims.main:app", host="0.0.0.0", port=8000)
