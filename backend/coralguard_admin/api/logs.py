"""Admin activity log endpoints"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from coralguard_admin.api.deps import AuthenticatedPrincipal, get_audit_trail, require_permissions
from coralguard_admin.config import settings
from coralguard_admin.schemas.activity_log import ActivityLogListResponse, ActivityLogResponse
from coralguard_admin.schemas.common import ChainVerifyResponse
from coralguard_admin.services.audit_trail import AuditTrail
from coralguard_admin.services.permission_catalog import Permission

router = APIRouter(prefix="/admin/logs", tags=["logs"])


@router.get("/activity", response_model=ActivityLogListResponse)
def query_activity(
    admin_id: Optional[str] = Query(None, description="Filter by acting admin"),
    action: Optional[str] = Query(None, description="Filter by action"),
    severity: Optional[str] = Query(None, description="Filter by severity"),
    target_type: Optional[str] = Query(None, description="Filter by target type"),
    target_id: Optional[str] = Query(None, description="Filter by target id"),
    start_time: Optional[datetime] = Query(None, description="Filter by start time (ISO 8601)"),
    end_time: Optional[datetime] = Query(None, description="Filter by end time (ISO 8601)"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    principal: AuthenticatedPrincipal = Depends(require_permissions(Permission.USER_MANAGEMENT)),
    audit: AuditTrail = Depends(get_audit_trail),
):
    """
    Query the admin activity log, newest first (user_management).

    The log is append-only; there is no update or delete endpoint.
    """
    result = audit.query_activity(
        admin_id=admin_id,
        action=action,
        severity=severity,
        target_type=target_type,
        target_id=target_id,
        start=start_time,
        end=end_time,
        page=page,
        limit=limit,
    )
    return ActivityLogListResponse(
        logs=[ActivityLogResponse.model_validate(r) for r in result.items],
        pagination=result.pagination(),
    )


@router.get("/activity/verify", response_model=ChainVerifyResponse)
def verify_activity_chain(
    principal: AuthenticatedPrincipal = Depends(require_permissions(Permission.SECURITY_MANAGEMENT)),
    audit: AuditTrail = Depends(get_audit_trail),
):
    """
    Verify the activity log hash chain (security_management).

    Walks every entry in insertion order and recomputes each SHA-256 link.
    ``broken_at`` is the log_id of the first entry that does not match.
    """
    check = audit.verify_activity_chain()
    return ChainVerifyResponse(
        ledger="activity_logs",
        valid=check.valid,
        total_entries=check.total_entries,
        broken_at=check.broken_at,
    )
