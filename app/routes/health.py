# app/routes/health.py
"""
Health check endpoints: liveness plus readiness of the engine and its store.
"""

import time

from fastapi import APIRouter, Request

from app.config import settings

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "time-inference"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check: engine wired, Redis reachable when configured.
    """
    checks = {}
    overall_ok = True

    # 1) Engine
    engine = getattr(request.app.state, "engine", None)
    checks["engine"] = {
        "ok": engine is not None,
        "auto_sync_active": engine.auto_sync.is_active if engine else False,
    }
    overall_ok = overall_ok and engine is not None

    # 2) Redis health check
    redis_client = getattr(request.app.state, "redis_client", None)
    if redis_client is None:
        checks["redis"] = {"ok": True, "backend": "memory"}
    else:
        t0 = time.time()
        try:
            redis_ok = await redis_client.ping()
            checks["redis"] = {
                "ok": bool(redis_ok),
                "latency_ms": round((time.time() - t0) * 1000, 1),
                "backend": "redis",
            }
            overall_ok = overall_ok and bool(redis_ok)
        except Exception as e:
            checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
            overall_ok = False

    # 3) Configuration checks
    config_issues = []
    if not settings.TENANT_DOMAIN:
        config_issues.append("TENANT_DOMAIN not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
