"""
Notification service layer: recipient resolution, template rendering and
notification record bookkeeping.
"""

import logging
import re
from datetime import datetime, timedelta
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from sqlalchemy.orm import Session
from sqlalchemy import func, desc, case, and_, or_

from app.exceptions import NotFoundError
from app.models.user import User, Organization
from app.models.notification import Notification, NotificationTemplate
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "super-admin")

class NotificationChannel(str, Enum):
    """通知渠道枚舉"""
    EMAIL = "email"
    SYSTEM = "system"

class NotificationStatus(str, Enum):
    """通知狀態枚舉"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

# 觸發事件對應的通知類別
EVENT_CATEGORY_MAP = {
    "attendance_late": "attendance",
    "attendance_missed_checkout": "attendance",
    "leave_requested": "leave",
    "leave_status_updated": "leave",
    "task_created": "tasks",
    "task_assigned": "tasks",
    "task_status_updated": "tasks",
    "task_comment_added": "tasks",
    "order_created": "orders",
    "order_updated": "orders",
    "order_cancelled": "orders",
    "inventory_low": "inventory",
    "inventory_out": "inventory",
    "customer_registered": "customers",
    "customer_updated": "customers",
    "security_login": "security",
    "security_password": "security",
    "system_alert": "system",
    "system_maintenance": "system",
}

PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def get_notification_category(trigger_event: Optional[str]) -> str:
    """取得觸發事件對應的通知類別，未知事件歸為 system"""
    return EVENT_CATEGORY_MAP.get(trigger_event or "", "system")


def replace_variables(text: str, variables: Mapping[str, Any]) -> str:
    """
    以 variables 取代 {{name}} 佔位符。

    找不到對應變數的佔位符會原樣保留。
    """
    def _substitute(match):
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_substitute, text or "")


@dataclass(frozen=True)
class OrganizationAdmins:
    """組織內所有管理員"""
    organization_id: int

@dataclass(frozen=True)
class ExplicitUsers:
    """明確指定的用戶列表，指定組織時只保留該組織的用戶"""
    user_ids: Sequence[int]
    organization_id: Optional[int] = None

@dataclass(frozen=True)
class TaskStakeholders:
    """任務相關人：負責人與建立者，可排除觸發者"""
    assignee_ids: Sequence[int]
    creator_id: Optional[int] = None
    exclude_user_id: Optional[int] = None

RecipientScope = Union[OrganizationAdmins, ExplicitUsers, TaskStakeholders]

@dataclass
class Recipient:
    user_id: int
    email: str
    full_name: str
    organization_id: Optional[int]
    notification_settings: Dict[str, Any] = field(default_factory=dict)

@dataclass
class RenderedTemplate:
    template_id: Optional[int]
    template_name: str
    channel: str
    category: str
    subject: str
    body: str


def is_category_enabled(recipient: Recipient, channel: str, category: str) -> bool:
    """
    檢查用戶是否開啟此渠道與類別的通知。

    email 渠道看 email 設定，system 渠道看 in_app 設定；沒有設定時視為開啟。
    """
    settings = recipient.notification_settings or {}
    channel_key = "email" if channel == NotificationChannel.EMAIL.value else "in_app"
    channel_settings = settings.get(channel_key)
    if not channel_settings:
        return True

    if not channel_settings.get("enabled", True):
        return False

    categories = channel_settings.get("categories") or {}
    return bool(categories.get(category, True))


class NotificationService:
    """通知服務業務邏輯"""

    def __init__(self, db: Session):
        self.db = db

    def resolve_recipients(self, scope: RecipientScope) -> List[Recipient]:
        """
        解析通知收件人。

        Args:
            scope: 收件人範圍

        Returns:
            去除重複的收件人列表；查詢失敗時返回空列表
        """
        try:
            if isinstance(scope, OrganizationAdmins):
                users = self._get_organization_admins(scope.organization_id)
            elif isinstance(scope, ExplicitUsers):
                users = self._get_users(list(scope.user_ids), scope.organization_id)
            elif isinstance(scope, TaskStakeholders):
                user_ids = list(scope.assignee_ids)
                if scope.creator_id is not None:
                    user_ids.append(scope.creator_id)
                if scope.exclude_user_id is not None:
                    user_ids = [uid for uid in user_ids if uid != scope.exclude_user_id]
                users = self._get_users(user_ids)
            else:
                logger.error(f"Unknown recipient scope: {scope!r}")
                return []

            return [
                Recipient(
                    user_id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    organization_id=user.organization_id,
                    notification_settings=user.notification_settings or {}
                )
                for user in users
            ]

        except Exception as e:
            logger.error(f"Failed to resolve recipients for {scope!r}: {str(e)}")
            return []

    def _get_organization_admins(self, organization_id: int) -> List[User]:
        organization = self.db.query(Organization).filter(Organization.id == organization_id).first()
        if not organization:
            logger.warning(f"No organization found for id {organization_id}")
            return []

        admins = self.db.query(User).filter(
            User.organization_id == organization_id,
            User.role.in_(ADMIN_ROLES),
            User.is_active == True
        ).order_by(User.id).all()

        if not admins:
            logger.warning(f"No admin users found for organization {organization_id}")
        return admins

    def _get_users(self, user_ids: List[int], organization_id: Optional[int] = None) -> List[User]:
        # 保留原順序並去除重複
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []

        query = self.db.query(User).filter(
            User.id.in_(unique_ids),
            User.is_active == True
        )
        if organization_id is not None:
            query = query.filter(User.organization_id == organization_id)
        users = query.all()
        users_by_id = {user.id: user for user in users}
        return [users_by_id[uid] for uid in unique_ids if uid in users_by_id]

    def get_active_template(self, template_name: str) -> NotificationTemplate:
        """取得啟用中的模板，不存在時拋出 NotFoundError"""
        template = self.db.query(NotificationTemplate).filter(
            NotificationTemplate.template_name == template_name,
            NotificationTemplate.is_active == True
        ).first()

        if not template:
            raise NotFoundError(f"Notification template '{template_name}' not found", error="Template not found")
        return template

    def find_template_for_event(self, trigger_event: str) -> NotificationTemplate:
        """取得觸發事件的預設模板"""
        template = self.db.query(NotificationTemplate).filter(
            NotificationTemplate.trigger_event == trigger_event,
            NotificationTemplate.is_default == True,
            NotificationTemplate.is_active == True
        ).order_by(desc(NotificationTemplate.updated_at), desc(NotificationTemplate.id)).first()

        if not template:
            raise NotFoundError(
                f"No default template found for event '{trigger_event}'",
                error="Template not found"
            )
        return template

    def render(self, template: NotificationTemplate, variables: Mapping[str, Any]) -> RenderedTemplate:
        """套用變數並標記模板已使用"""
        rendered = RenderedTemplate(
            template_id=template.id,
            template_name=template.template_name,
            channel=template.channel,
            category=template.category or get_notification_category(template.trigger_event),
            subject=replace_variables(template.subject, variables),
            body=replace_variables(template.body, variables)
        )

        template.last_used_at = utc_now()
        template.version = (template.version or 1) + 1
        self.db.commit()
        return rendered

    def render_template(self, template_key: str, variables: Mapping[str, Any]) -> RenderedTemplate:
        """
        依模板名稱渲染通知內容。

        Raises:
            NotFoundError: 模板不存在或未啟用
        """
        template = self.get_active_template(template_key)
        return self.render(template, variables or {})

    def create_notification(
        self,
        recipient: Recipient,
        rendered: RenderedTemplate,
        category: str,
        organization_id: Optional[int] = None
    ) -> Notification:
        """建立 pending 狀態的通知紀錄"""
        notification = Notification(
            user_id=recipient.user_id,
            organization_id=organization_id if organization_id is not None else recipient.organization_id,
            template_id=rendered.template_id,
            channel=rendered.channel,
            category=category,
            subject=rendered.subject,
            body=rendered.body,
            status=NotificationStatus.PENDING.value,
            delivery_attempt_count=0,
            created_at=utc_now()
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_sent(self, notification: Notification) -> Notification:
        """標記通知已送達"""
        notification.status = NotificationStatus.SENT.value
        notification.sent_at = utc_now()
        notification.error_message = None
        notification.delivery_attempt_count = (notification.delivery_attempt_count or 0) + 1
        self.db.commit()
        return notification

    def mark_failed(self, notification: Notification, error_message: str) -> Notification:
        """標記通知發送失敗"""
        notification.status = NotificationStatus.FAILED.value
        notification.error_message = error_message
        notification.delivery_attempt_count = (notification.delivery_attempt_count or 0) + 1
        self.db.commit()
        return notification

    def get_retryable_notifications(
        self,
        max_attempts: int,
        pending_grace_seconds: int = 0,
        limit: int = 100,
        now: datetime = None
    ) -> List[Notification]:
        """
        取得可重試的 email 通知（failed，或建立超過寬限時間的 pending，且未達重試上限）。

        剛建立的 pending 通知可能仍在首次派送中，寬限時間內不重試。
        """
        pending_cutoff = (now or utc_now()) - timedelta(seconds=pending_grace_seconds)
        return self.db.query(Notification).filter(
            Notification.channel == NotificationChannel.EMAIL.value,
            or_(
                Notification.status == NotificationStatus.FAILED.value,
                and_(
                    Notification.status == NotificationStatus.PENDING.value,
                    Notification.created_at <= pending_cutoff
                )
            ),
            Notification.delivery_attempt_count < max_attempts
        ).order_by(Notification.id).limit(limit).all()

    def list_user_notifications(
        self,
        user_id: int,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Notification]:
        """取得用戶的通知（新到舊）"""
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if status:
            query = query.filter(Notification.status == status)
        return query.order_by(desc(Notification.id)).offset(skip).limit(limit).all()

    def get_stats(self, organization_id: Optional[int] = None) -> Dict[str, int]:
        """取得通知統計"""
        query = self.db.query(
            func.count(Notification.id).label("total"),
            func.sum(case((Notification.status == "pending", 1), else_=0)).label("pending"),
            func.sum(case((Notification.status == "sent", 1), else_=0)).label("sent"),
            func.sum(case((Notification.status == "failed", 1), else_=0)).label("failed"),
            func.sum(case((Notification.channel == "email", 1), else_=0)).label("email"),
            func.sum(case((Notification.channel == "system", 1), else_=0)).label("system"),
        )
        if organization_id is not None:
            query = query.filter(Notification.organization_id == organization_id)

        row = query.one()
        return {
            "total": row.total or 0,
            "pending": int(row.pending or 0),
            "sent": int(row.sent or 0),
            "failed": int(row.failed or 0),
            "email": int(row.email or 0),
            "system": int(row.system or 0),
        }
