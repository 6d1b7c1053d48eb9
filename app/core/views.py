"""
Infrastructure endpoints.

Not part of the payments domain; used by Docker, load balancers and the
payout on-call to check the service is up and able to pay out.
"""

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse


def health_check(request):
    """
    Report database, cache and disbursement readiness.

    Returns:
        JsonResponse with:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected" (not fatal)
        - disbursement: "configured", "manual" or "unconfigured" (not fatal)

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "disbursement": _disbursement_mode(),
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"

    # The cache backend ignores Redis errors, so a failed round trip reads as a miss
    cache.set("health_check", "ok", timeout=1)
    health_status["cache"] = "connected" if cache.get("health_check") == "ok" else "disconnected"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JsonResponse(health_status, status=status_code)


def _disbursement_mode() -> str:
    if settings.PAYOUT_MANUAL_DISBURSEMENT:
        return "manual"
    if settings.WIPAY_API_KEY and settings.WIPAY_PLATFORM_ACCOUNT_ID:
        return "configured"
    return "unconfigured"
