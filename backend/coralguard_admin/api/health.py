"""Health check endpoints"""
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from coralguard_admin.api.deps import get_diagnostics
from coralguard_admin.config import settings
from coralguard_admin.database import get_db
from coralguard_admin.models.admin_account import AdminAccount
from coralguard_admin.models.user_account import UserAccount
from coralguard_admin.utils.clock import utcnow
from coralguard_admin.utils.diagnostics import DiagnosticsSink

router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "CoralGuard Admin"
VERSION = "0.1.0"

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
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - verifies the database is reachable

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks: Dict[str, Any] = {
        "database": False,
        "database_latency_ms": None
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        checks["database"] = True
        checks["database_latency_ms"] = round(latency_ms, 2)
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": f"Database check failed: {str(e)}"
            },
        )

    if latency_ms > 1000:  # More than 1 second
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "checks": checks, "message": "Database latency is high"},
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness probe
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": utcnow().isoformat()
    }


@router.get("/stats")
def health_stats(
    db: Session = Depends(get_db),
    diagnostics: DiagnosticsSink = Depends(get_diagnostics),
):
    """
    Account counts, swallowed-failure counts and database latency
    """
    try:
        total_admins = db.query(AdminAccount).count()
        active_admins = db.query(AdminAccount).filter(AdminAccount.is_active == True).count()  # noqa: E712
        total_users = db.query(UserAccount).count()

        db_start = time.time()
        db.execute(text("SELECT 1"))
        db_latency_ms = (time.time() - db_start) * 1000
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "error",
                "message": str(e),
                "timestamp": utcnow().isoformat()
            },
        )

    recent = diagnostics.recent()
    swallowed: Dict[str, int] = {}
    for entry in recent:
        swallowed[entry.source] = swallowed.get(entry.source, 0) + 1

    return {
        "status": "healthy",
        "admins": {
            "total": total_admins,
            "active": active_admins
        },
        "users": {
            "total": total_users
        },
        "swallowed_failures": swallowed,
        "database": {
            "connected": True,
            "latency_ms": round(db_latency_ms, 2)
        },
        "system": {
            "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
            "log_level": settings.LOG_LEVEL
        },
        "timestamp": utcnow().isoformat()
    }
