"""Audit trail query endpoint (read-only)."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from parts_radar.app.routes.deps import get_audit
from parts_radar.domain.enums import AuditActionType
from parts_radar.domain.schemas import AuditLogResponse, AuditQuery
from parts_radar.services.audit_trail import AuditTrail

router = APIRouter(prefix="/api/parts/audit", tags=["audit"])


@router.get("", response_model=list[AuditLogResponse])
async def query_audit(
    action_type: Optional[AuditActionType] = None,
    actor_id: Optional[str] = None,
    request_id: Optional[str] = None,
    partner_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    audit: AuditTrail = Depends(get_audit),
):
    """Audit entries matching every filter, newest first."""
    return await audit.query(AuditQuery(
        action_type=action_type,
        actor_id=actor_id,
        request_id=request_id,
        partner_id=partner_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    ))
