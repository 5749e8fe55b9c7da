"""Health check endpoints"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adminguard import __version__
from adminguard.api.deps import require_admin_session
from adminguard.config import settings
from adminguard.database import get_db
from adminguard.models.admin_user import ADMIN_ROLES, AdminUser
from adminguard.services.presence_store import PresenceStore
from adminguard.services.session_resolver import ResolvedSession

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "AdminGuard",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - verifies the database is reachable

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks = {
        "database": False,
        "database_latency_ms": None
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        checks["database"] = True
        checks["database_latency_ms"] = round(latency_ms, 2)
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": f"Database check failed: {str(e)}"
            },
        )

    if latency_ms > 1000:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "degraded",
                "checks": checks,
                "message": "Database latency is high"
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness checks
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/stats")
def health_stats(
    request: Request,
    db: Session = Depends(get_db),
    session: ResolvedSession = Depends(require_admin_session),
) -> Dict[str, Any]:
    """
    Admin and presence statistics (admin session required)

    Returns:
    - Admin account counts (total, active, with 2FA)
    - Presence counts (recent sessions, live connections)
    - Database latency
    """
    try:
        admins = db.query(AdminUser).filter(AdminUser.role.in_(ADMIN_ROLES))
        total_admins = admins.count()
        active_admins = admins.filter(AdminUser.is_active == True).count()
        two_factor_admins = admins.filter(AdminUser.totp_enabled == True).count()
        recent_sessions = PresenceStore(db).active_sessions()

        db_start = time.time()
        db.execute(text("SELECT 1"))
        db_latency_ms = (time.time() - db_start) * 1000
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "error",
                "message": str(e),
                "timestamp": datetime.utcnow().isoformat()
            },
        )

    return {
        "status": "healthy",
        "admins": {
            "total": total_admins,
            "active": active_admins,
            "two_factor_enabled": two_factor_admins
        },
        "presence": {
            "recent_sessions": len(recent_sessions),
            "active_now": sum(1 for item in recent_sessions if item["isActive"]),
            "live_connections": request.app.state.presence_registry.connection_count()
        },
        "database": {
            "connected": True,
            "latency_ms": round(db_latency_ms, 2)
        },
        "system": {
            "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
            "environment": settings.ENVIRONMENT
        },
        "timestamp": datetime.utcnow().isoformat()
    }
