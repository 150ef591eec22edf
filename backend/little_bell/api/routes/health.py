"""Health check endpoints."""
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from little_bell import __version__
from little_bell.dependencies import get_store
from little_bell.store import Store

router = APIRouter()

SERVICE_NAME = "little-bell"


@router.get("/health")
async def health_check(store: Store = Depends(get_store)):
    """Liveness check. Reports unhealthy once the store has seen corruption."""
    body = {"status": "healthy", "service": SERVICE_NAME, "version": __version__}
    if not store.healthy:
        body["status"] = "unhealthy"
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@router.get("/ready")
async def readiness_check(store: Store = Depends(get_store)):
    """Readiness check - verifies the store answers queries."""
    if await store.ping():
        return {"status": "ready", "database": "connected", "writable": store.healthy}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "database": "disconnected"},
    )
