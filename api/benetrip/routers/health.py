"""
Health Check Endpoints
"""
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "benetrip-flights-api"}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness check - reports configuration and failure state of each upstream provider
    """
    checks = {}
    for provider in request.app.state.providers:
        checks[provider.name] = {
            "configured": provider.is_configured,
            "status": provider.status.value,
        }

    all_healthy = all(
        check["configured"] and check["status"] == "healthy" for check in checks.values()
    )

    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks
    }


@router.get("/health/live")
async def liveness_check():
    """Liveness check - is the service running"""
    return {"status": "alive"}
