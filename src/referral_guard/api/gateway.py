"""API Gateway - FastAPI intake for referral events and device sightings."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from referral_guard.api.schemas import (
    ErrorResponse,
    FingerprintSightingRequest,
    FingerprintSightingResponse,
    ReferralEventRequest,
    ReferralEventResponse,
)
from referral_guard.api.service import ReferralGuardService
from referral_guard.common.config.settings import Config, get_config
from referral_guard.common.exceptions import (
    ReferralGuardException,
    StorageError,
    ValidationError,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("referral_guard_api")


class ServiceManager:
    """Process-wide service singleton, created in the app lifespan."""

    _instance: Optional[ReferralGuardService] = None

    @classmethod
    async def start(cls, config: Optional[Config] = None) -> ReferralGuardService:
        if cls._instance is None:
            cls._instance = await ReferralGuardService.create(config or get_config())
            logger.info("ReferralGuardService initialized")
        return cls._instance

    @classmethod
    def get_service(cls) -> Optional[ReferralGuardService]:
        return cls._instance

    @classmethod
    async def shutdown(cls) -> None:
        """Shutdown the service and release resources."""
        if cls._instance is not None:
            await cls._instance.shutdown()
            cls._instance = None
            logger.info("ReferralGuardService shutdown complete")


def get_service() -> ReferralGuardService:
    """FastAPI dependency returning the running service."""
    service = ServiceManager.get_service()
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="not_ready")
    return service


# =============================================================================
# CORS CONFIGURATION
# =============================================================================

def get_cors_origins() -> List[str]:
    """Get allowed CORS origins from REFGUARD_CORS_ORIGINS (comma-separated).

    Unset in production disables CORS; unset elsewhere allows all origins.
    """
    origins_env = os.environ.get("REFGUARD_CORS_ORIGINS", "")

    if origins_env:
        return [origin.strip() for origin in origins_env.split(",") if origin.strip()]

    if os.environ.get("REFGUARD_ENVIRONMENT", "development") == "production":
        logger.warning(
            "REFGUARD_CORS_ORIGINS not set in production. CORS will be disabled."
        )
        return []

    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    config = get_config()
    logging.getLogger().setLevel(config.effective_log_level)
    logger.info("ReferralGuard API Gateway starting up...")
    await ServiceManager.start(config)
    logger.info("ReferralGuard API Gateway ready")

    yield

    logger.info("ReferralGuard API Gateway shutting down...")
    await ServiceManager.shutdown()
    logger.info("ReferralGuard API Gateway shutdown complete")


environment = os.environ.get("REFGUARD_ENVIRONMENT", "development")
enable_docs_default = "false" if environment == "production" else "true"
enable_docs = os.environ.get("REFGUARD_ENABLE_DOCS", enable_docs_default).lower() == "true"

app = FastAPI(
    title="ReferralGuard API Gateway",
    description="Referral fraud intake: referral events and device fingerprint sightings.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if enable_docs else None,
    redoc_url="/redoc" if enable_docs else None,
)

cors_origins = get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "GET"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def _status_for(exc: ReferralGuardException) -> int:
    if isinstance(exc, StorageError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ReferralGuardException)
async def referral_guard_error_handler(request: Request, exc: ReferralGuardException) -> JSONResponse:
    """Map engine errors to HTTP responses without leaking internals."""
    request_id = getattr(request.state, "request_id", None)
    status_code = _status_for(exc)
    logger.error(
        f"Request failed: {exc.code}: {exc.message}",
        extra={"request_id": request_id},
    )
    message = "Storage is temporarily unavailable" if status_code == 503 else exc.message
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.code.lower(),
            message=message,
            request_id=request_id,
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors with a sanitized message."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "Unexpected error",
        extra={"request_id": request_id, "error_type": type(exc).__name__}
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            request_id=request_id,
        ).model_dump(),
    )


# =============================================================================
# MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to each request for tracing."""
    request_id = f"req_{uuid4().hex[:12]}"
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.post(
    "/v1/referral-events",
    response_model=ReferralEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={503: {"description": "Service not ready", "model": ErrorResponse}},
    summary="Submit a referral event for fraud checking",
)
async def submit_referral_event(
    request: ReferralEventRequest,
    service: ReferralGuardService = Depends(get_service),
) -> ReferralEventResponse:
    """Queue a fraud check and return immediately.

    The check runs in the background and never affects the caller.
    """
    response = service.submit_referral_event(request)
    logger.info(
        "Referral event accepted" if response.accepted else "Referral event dropped",
        extra={
            "event_id": response.event_id,
            "referrer_account_id": request.referrer_account_id,
            "referred_account_id": request.referred_account_id,
        }
    )
    return response


@app.post(
    "/v1/fingerprints",
    response_model=FingerprintSightingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={503: {"description": "Storage unavailable", "model": ErrorResponse}},
    summary="Record a device fingerprint sighting",
)
async def record_fingerprint(
    request: FingerprintSightingRequest,
    service: ReferralGuardService = Depends(get_service),
) -> FingerprintSightingResponse:
    return await service.record_fingerprint(request)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "service": "referral-guard-gateway"}


@app.get("/ready")
async def readiness_check() -> dict:
    """Readiness check endpoint. 503 until the service is started."""
    if ServiceManager.get_service() is None:
        raise HTTPException(status_code=503, detail="not_ready")
    return {"status": "ready", "service": "referral-guard-gateway"}


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "referral_guard.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
