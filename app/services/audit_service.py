"""
Audit log service: append-only records of audited actions.
"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc

from app.models.audit_log import AuditLog
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "warning", "error", "critical")


def create_audit_log(
    db: Session,
    action: str,
    resource: str,
    resource_id: Optional[int] = None,
    user_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    organization_id: Optional[int] = None,
    severity: str = "info"
) -> Optional[AuditLog]:
    """
    建立稽核紀錄。

    稽核失敗不可影響主要流程，因此失敗時只記錄日誌並返回 None。

    Args:
        db: 資料庫 session
        action: 執行的動作
        resource: 資源類型
        resource_id: 資源 ID
        user_id: 執行者（系統動作為 None）
        details: 額外細節
        organization_id: 組織 ID
        severity: 嚴重程度

    Returns:
        新建立的稽核紀錄，失敗時為 None
    """
    try:
        log = AuditLog(
            action=action,
            user_id=user_id,
            resource=resource,
            resource_id=resource_id,
            details={**(details or {}), "timestamp": utc_now().isoformat()},
            organization_id=organization_id,
            severity=severity if severity in SEVERITIES else "info"
        )
        db.add(log)
        db.commit()
        db.refresh(log)

        logger.info(f"Audit log: {action} - {resource} - {log.severity}")
        return log

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create audit log for {action}: {str(e)}")
        return None


def log_status_change(
    db: Session,
    resource: str,
    resource_id: int,
    old_status: str,
    new_status: str,
    user_id: Optional[int] = None,
    organization_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None
) -> Optional[AuditLog]:
    """記錄狀態變更"""
    return create_audit_log(
        db,
        action=f"{resource.replace('_', ' ').title()} Status Changed",
        resource=resource,
        resource_id=resource_id,
        user_id=user_id,
        details={**(details or {}), "old_status": old_status, "new_status": new_status},
        organization_id=organization_id
    )


def list_audit_logs(
    db: Session,
    organization_id: Optional[int] = None,
    resource: Optional[str] = None,
    severity: Optional[str] = None,
    skip: int = 0,
    limit: int = 50
) -> List[AuditLog]:
    """查詢稽核紀錄（新到舊）"""
    query = db.query(AuditLog)

    if organization_id is not None:
        query = query.filter(AuditLog.organization_id == organization_id)
    if resource:
        query = query.filter(AuditLog.resource == resource)
    if severity:
        query = query.filter(AuditLog.severity == severity)

    return query.order_by(desc(AuditLog.created_at), desc(AuditLog.id)).offset(skip).limit(limit).all()
