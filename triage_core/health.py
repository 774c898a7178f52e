"""Health check endpoints for monitoring the application status."""

import logging
import uuid

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)


def check_database() -> dict[str, bool | str]:
    """Check database connectivity by executing a simple query."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            return {"status": True, "message": "Database connection successful"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!s}")
        return {"status": False, "message": f"Database error: {e!s}"}


def check_cache() -> dict[str, bool | str]:
    """Round-trip a value through the cache that backs the sync status store."""
    probe_key = f"health:{uuid.uuid4().hex}"
    try:
        cache.set(probe_key, "ok", timeout=5)
        value = cache.get(probe_key)
        cache.delete(probe_key)
        if value != "ok":
            return {"status": False, "message": "Cache did not return stored value"}
        return {"status": True, "message": "Cache connection successful"}
    except Exception as e:
        logger.error(f"Cache health check failed: {e!s}")
        return {"status": False, "message": f"Cache error: {e!s}"}


@require_GET
def health_check(request) -> JsonResponse:
    """Basic health check endpoint that validates core system components.

    Returns HTTP 200 if all systems are operational, HTTP 500 otherwise.
    """
    checks: list[dict] = [
        {"name": "database", "result": check_database()},
        {"name": "cache", "result": check_cache()},
    ]

    is_healthy = all(check["result"]["status"] for check in checks)

    response_data = {
        "status": "healthy" if is_healthy else "unhealthy",
        "version": getattr(settings, "APP_VERSION", "dev"),
        "checks": checks,
    }

    return JsonResponse(response_data, status=200 if is_healthy else 500)


@require_GET
def readiness_check(request) -> JsonResponse:
    """Readiness check endpoint to determine if the app can accept traffic."""
    db_check = check_database()
    cache_check = check_cache()

    if db_check["status"] and cache_check["status"]:
        return JsonResponse({"status": "ready"})

    reasons = []
    if not db_check["status"]:
        reasons.append(f"Database: {db_check['message']}")
    if not cache_check["status"]:
        reasons.append(f"Cache: {cache_check['message']}")

    return JsonResponse({"status": "not ready", "reasons": reasons}, status=503)
