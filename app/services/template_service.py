"""
Notification template service: CRUD and default template seeding.
"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.notification import NotificationTemplate
from app.services.notification_service import get_notification_category
from app.utils.validators import validate_notification_channel

logger = logging.getLogger(__name__)

# 系統預設模板
DEFAULT_TEMPLATES = [
    {
        "template_name": "attendance_late",
        "subject": "Late check-in: {{employeeName}}",
        "body": (
            "<p>{{employeeName}} checked in late at {{checkInTime}} on {{date}}.</p>"
            "<p>Work location: {{workLocation}}</p>"
        ),
        "channel": "system",
        "trigger_event": "attendance_late",
    },
    {
        "template_name": "leave_requested",
        "subject": "Leave request from {{employeeName}}",
        "body": (
            "<p>{{employeeName}} requested {{leaveType}} leave "
            "from {{startDate}} to {{endDate}} ({{days}} days).</p>"
            "<p>Reason: {{reason}}</p>"
        ),
        "channel": "email",
        "trigger_event": "leave_requested",
    },
    {
        "template_name": "task_assigned",
        "subject": "New task assigned: {{taskTitle}}",
        "body": "<p>{{assignerName}} assigned you the task <strong>{{taskTitle}}</strong>, due {{dueDate}}.</p>",
        "channel": "email",
        "trigger_event": "task_assigned",
    },
    {
        "template_name": "task_status_updated",
        "subject": "Task status updated: {{taskTitle}}",
        "body": "<p>{{updatedBy}} changed <strong>{{taskTitle}}</strong> from {{oldStatus}} to {{newStatus}}.</p>",
        "channel": "system",
        "trigger_event": "task_status_updated",
    },
    {
        "template_name": "system_alert",
        "subject": "{{title}}",
        "body": "<p>{{message}}</p>",
        "channel": "system",
        "trigger_event": "system_alert",
    },
]

UPDATABLE_FIELDS = ("subject", "body", "channel", "trigger_event", "category", "is_active", "is_default")


class TemplateService:
    """通知模板管理"""

    def __init__(self, db: Session):
        self.db = db

    def list_templates(
        self,
        active_only: bool = False,
        trigger_event: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[NotificationTemplate]:
        query = self.db.query(NotificationTemplate)
        if active_only:
            query = query.filter(NotificationTemplate.is_active == True)
        if trigger_event:
            query = query.filter(NotificationTemplate.trigger_event == trigger_event)
        return query.order_by(NotificationTemplate.template_name).offset(skip).limit(limit).all()

    def get_template(self, template_id: int) -> NotificationTemplate:
        template = self.db.query(NotificationTemplate).filter(NotificationTemplate.id == template_id).first()
        if not template:
            raise NotFoundError(f"Notification template {template_id} not found", error="Template not found")
        return template

    def create_template(self, data: Dict[str, Any]) -> NotificationTemplate:
        """
        建立通知模板。

        Raises:
            ValidationError: 渠道不正確
            ConflictError: 模板名稱重複
        """
        channel = data.get("channel") or "system"
        if not validate_notification_channel(channel):
            raise ValidationError(f"Invalid notification channel: {channel}")

        template_name = data["template_name"]
        existing = self.db.query(NotificationTemplate).filter(
            NotificationTemplate.template_name == template_name
        ).first()
        if existing:
            raise ConflictError(f"Template '{template_name}' already exists", error="Template already exists")

        trigger_event = data.get("trigger_event") or "custom"
        template = NotificationTemplate(
            template_name=template_name,
            subject=data["subject"],
            body=data["body"],
            channel=channel,
            trigger_event=trigger_event,
            category=data.get("category") or get_notification_category(trigger_event),
            is_active=data.get("is_active", True),
            is_default=data.get("is_default", False),
            version=1
        )

        try:
            self.db.add(template)
            self.db.commit()
            self.db.refresh(template)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Template '{template_name}' already exists", error="Template already exists")

        logger.info(f"Notification template created: {template_name}")
        return template

    def update_template(self, template_id: int, data: Dict[str, Any]) -> NotificationTemplate:
        """更新通知模板，版本號加一"""
        template = self.get_template(template_id)

        if data.get("channel") is not None and not validate_notification_channel(data["channel"]):
            raise ValidationError(f"Invalid notification channel: {data['channel']}")

        for field in UPDATABLE_FIELDS:
            if data.get(field) is not None:
                setattr(template, field, data[field])

        template.version = (template.version or 1) + 1
        self.db.commit()
        self.db.refresh(template)

        logger.info(f"Notification template updated: {template.template_name} (v{template.version})")
        return template

    def deactivate_template(self, template_id: int) -> NotificationTemplate:
        """停用模板（不刪除）"""
        template = self.get_template(template_id)
        template.is_active = False
        self.db.commit()
        self.db.refresh(template)

        logger.info(f"Notification template deactivated: {template.template_name}")
        return template


def seed_default_templates(db: Session) -> int:
    """
    建立缺少的系統預設模板。

    已存在的同名模板不會被覆蓋。

    Returns:
        新建立的模板數量
    """
    created = 0
    for data in DEFAULT_TEMPLATES:
        exists = db.query(NotificationTemplate.id).filter(
            NotificationTemplate.template_name == data["template_name"]
        ).first()
        if exists:
            continue

        db.add(NotificationTemplate(
            **data,
            category=get_notification_category(data["trigger_event"]),
            is_active=True,
            is_default=True,
            version=1
        ))
        created += 1

    if created:
        db.commit()
        logger.info(f"Seeded {created} default notification templates")

    return created
