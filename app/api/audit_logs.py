"""
Audit log API routes (admin only).
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.audit import AuditLogResponse
from app.utils.auth import get_current_admin_user
from app.utils.validators import validate_pagination_params
from app.services.audit_service import list_audit_logs
from app.api.deps import envelope

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", summary="查詢稽核紀錄")
async def get_audit_logs(
    resource: Optional[str] = Query(None, description="資源類型篩選"),
    severity: Optional[str] = Query(None, description="嚴重程度篩選"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    skip, limit = validate_pagination_params(skip, limit, max_limit=200)
    logs = list_audit_logs(
        db,
        organization_id=current_user.organization_id,
        resource=resource,
        severity=severity,
        skip=skip,
        limit=limit
    )
    return envelope([AuditLogResponse.model_validate(log) for log in logs], "Audit logs retrieved successfully")
