# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database reachability and cache reachability separately; the cache
is best-effort, so a cache failure degrades the status instead of failing it.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import Order, Product, User
from ..services.cache_service import get_cache
from storefront.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "orders": db.session.query(Order).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_cache_health() -> dict:
    start_time = time.time()
    try:
        cache = get_cache()
        cache.set("health_check", {"ok": True}, 5)
        ok = cache.get("health_check") is not None
        return {
            "status": "healthy" if ok else "degraded",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "backend": current_app.config.get("CACHE_BACKEND"),
        }
    except Exception:
        current_app.logger.exception("Cache health check failed")
        return {
            "status": "degraded",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Cache unavailable",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (cache down)
    - 503: database unreachable
    """
    database_health = check_database_health()
    cache_health = check_cache_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif cache_health["status"] != "healthy":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
            "cache": cache_health,
        },
    }, http_status
