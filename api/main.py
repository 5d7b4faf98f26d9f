"""
FastAPI main application for the TokenWatch status API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import JSONResponse

from api.auth import get_rate_limit_headers, verify_api_key
from api.config import config as api_config
from api.models import (
    ErrorResponse, HealthResponse, StateResetResponse,
    TargetDetail, TargetListResponse, TargetSummary
)
from scheduler.bootstrap import build_service, load_configured_targets
from scheduler.models import TargetStatus
from scheduler.scheduler_service import SchedulerService
from tracker.exceptions import StorageUnavailable
from tracker.models import CycleResult, Target
from utilities.config import config

# Setup logging
logger = structlog.get_logger(__name__)

# Global scheduler service
service: Optional[SchedulerService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TokenWatch status API")

    global service
    try:
        targets = load_configured_targets(config)
        service = build_service(config, targets)
        logger.info("Targets loaded", targets=len(targets), state_dir=config.state_dir)
    except Exception as e:
        logger.error("Failed to load targets", error=str(e))
        raise

    yield

    logger.info("Shutting down TokenWatch status API")
    service = None


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    Inspect the targets tracked by TokenWatch and trigger checks on demand.

    ## Authentication

    Every endpoint except `/health` requires an API key in the Authorization header:

    ```
    Authorization: Bearer your_api_key_here
    ```

    ## Rate Limiting

    Each API key is limited to a fixed number of requests per window. Rate limit
    information is included in response headers.
    """,
    version=api_config.api_version,
    lifespan=lifespan
)


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(StorageUnavailable)
async def storage_exception_handler(request, exc: StorageUnavailable):
    """The state store could not be read or written."""
    logger.error("State store unavailable", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=ErrorResponse(
            error="State store unavailable",
            detail=str(exc),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


def get_service() -> SchedulerService:
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler service not available"
        )
    return service


def _get_target(svc: SchedulerService, target_id: str) -> Target:
    target = svc.targets.get(target_id)
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Target with ID '{target_id}' not found"
        )
    return target


def _summary_fields(svc: SchedulerService, target: Target) -> Dict:
    record = svc.change_detector.state_store.load(target.id)
    return {
        "id": target.id,
        "name": target.display_name,
        "locator": target.locator,
        "rule_kind": target.extraction_rule.kind,
        "stored_value": record.value if record else None,
        "observed_at": record.observed_at if record else None,
        "status": svc.statuses.get(target.id, TargetStatus(target_id=target.id)),
    }


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    if service is None:
        return HealthResponse(
            status="degraded",
            timestamp=datetime.now(timezone.utc),
            version=api_config.api_version,
            target_count=0,
            state_store_status="unknown"
        )

    store = service.change_detector.state_store
    available = getattr(store, "is_available", lambda: True)()
    return HealthResponse(
        status="healthy" if available else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=api_config.api_version,
        target_count=len(service.targets),
        state_store_status="healthy" if available else "unavailable"
    )


# Target endpoints
@app.get("/targets", response_model=TargetListResponse, tags=["Targets"])
async def list_targets(api_key: str = Depends(verify_api_key)):
    """List tracked targets with their stored values and last outcome."""
    svc = get_service()
    summaries = [TargetSummary(**_summary_fields(svc, target)) for target in svc.targets.values()]
    result = TargetListResponse(targets=summaries, total=len(summaries))

    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_rate_limit_headers(api_key)
    )


@app.get("/targets/{target_id}", response_model=TargetDetail, tags=["Targets"])
async def get_target(target_id: str, api_key: str = Depends(verify_api_key)):
    """
    Get a single target.

    - **target_id**: Target identifier
    """
    svc = get_service()
    target = _get_target(svc, target_id)
    detail = TargetDetail(
        **_summary_fields(svc, target),
        extraction_rule=target.extraction_rule,
        timeout_ms=target.timeout_ms,
        user_agent=target.user_agent
    )

    return JSONResponse(
        content=detail.model_dump(mode="json"),
        headers=get_rate_limit_headers(api_key)
    )


@app.post("/targets/{target_id}/run", response_model=CycleResult, tags=["Targets"])
async def run_target(target_id: str, api_key: str = Depends(verify_api_key)):
    """
    Run one detection cycle for a target now.

    The cycle outcome is returned with status 200 whether or not the
    cycle succeeded; inspect `outcome` and `error`.
    """
    svc = get_service()
    target = _get_target(svc, target_id)
    result = await svc.run_target(target)

    logger.info("Cycle triggered via API", target_id=target_id, outcome=result.outcome.value)
    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_rate_limit_headers(api_key)
    )


@app.delete("/targets/{target_id}/state", response_model=StateResetResponse, tags=["Targets"])
async def reset_target_state(target_id: str, api_key: str = Depends(verify_api_key)):
    """
    Forget the stored value of a target.

    The next cycle will treat the target as a first run.
    """
    svc = get_service()
    target = _get_target(svc, target_id)
    store = svc.change_detector.state_store

    try:
        previous = store.load(target.id)
    except StorageUnavailable as e:
        logger.warning("Discarding unreadable state record", target_id=target_id, error=str(e))
        previous = None
    deleted = store.delete(target.id)

    logger.info("Target state reset via API", target_id=target_id, deleted=deleted)
    result = StateResetResponse(target_id=target.id, deleted=deleted, previous=previous)
    return JSONResponse(
        content=result.model_dump(mode="json"),
        headers=get_rate_limit_headers(api_key)
    )


@app.get("/scheduler", tags=["Scheduler"])
async def get_scheduler_status(api_key: str = Depends(verify_api_key)):
    """Get scheduler and per-target run status."""
    svc = get_service()
    return JSONResponse(
        content=svc.get_scheduler_status(),
        headers=get_rate_limit_headers(api_key)
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
