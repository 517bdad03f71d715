# /stepflow/routes/public.py

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest
from datetime import datetime, timezone

from stepflow.config.settings import settings
from stepflow.utils.dependencies import verify_metrics_access

# Public endpoints: service banner, health probes and the Prometheus scrape
# target (protected by an API key when one is configured).

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "stepflow conversation engine",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }


@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check(request: Request):
    """Readiness probe: the conversation store must answer."""
    try:
        await request.app.state.store.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service not ready: {e}")
    return {"status": "ready", "in_flight_turns": request.app.state.dispatcher.in_flight}


@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Liveness probe."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_metrics_access)):
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
