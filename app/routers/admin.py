"""
HTTP routes for health, direct verification and operations.

Endpoints:
  GET  /health              - Service status, broker state, providers
  POST /verify              - Verify a single claim
  GET  /admin/cache/stats   - Result cache counters
  POST /admin/cache/clear   - Drop every cached verdict
  GET  /admin/dispatch      - Broker state and inline jobs in flight
  GET  /metrics             - Prometheus metrics
"""

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from app.core.container import get_services
from app.core.logger import get_logger
from app.core.observability import metrics_payload
from app.core.schemas import ClaimResult, VerifyClaimRequest

logger = get_logger(__name__)

router = APIRouter()

_NOT_READY = {"error": "Services not initialized"}


@router.get("/health")
async def health():
    services = get_services()
    if services is None:
        return JSONResponse({"status": "starting", **_NOT_READY}, status_code=503)
    return {
        "status": "ok",
        "broker_state": services.orchestrator.state.value,
        "providers": services.verifier.retriever.providers,
        "reasoning": services.verifier.aggregator.reasoning is not None,
        "active_sessions": services.hub.active_sessions,
    }


@router.post("/verify", response_model=ClaimResult)
async def verify_claim(request: VerifyClaimRequest):
    """Single-claim check for clients without a live session."""
    services = get_services()
    if services is None:
        return JSONResponse(_NOT_READY, status_code=503)
    result = await services.verifier.verify_single(request.claim)
    logger.info(f"[AdminAPI] /verify {request.claim[:60]!r} -> {result.verdict}")
    return result


@router.get("/admin/cache/stats", tags=["Admin"])
async def cache_stats():
    services = get_services()
    if services is None:
        return JSONResponse(_NOT_READY, status_code=503)
    return services.cache.stats()


@router.post("/admin/cache/clear", tags=["Admin"])
async def cache_clear():
    services = get_services()
    if services is None:
        return JSONResponse(_NOT_READY, status_code=503)
    cleared = len(services.cache)
    services.cache.clear()
    logger.info(f"[AdminAPI] Cleared {cleared} cached verdicts")
    return {"status": "success", "cleared": cleared}


@router.get("/admin/dispatch", tags=["Admin"])
async def dispatch_state():
    services = get_services()
    if services is None:
        return JSONResponse(_NOT_READY, status_code=503)
    return services.orchestrator.snapshot()


@router.get("/metrics")
async def metrics():
    payload, content_type = metrics_payload()
    return Response(content=payload, media_type=content_type)
