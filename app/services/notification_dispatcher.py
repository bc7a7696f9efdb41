"""
Notification dispatcher: best-effort, fire-and-forget fan-out of templated
notifications to resolved recipients.

The dispatcher is constructed once per application (see ``app.main``) with a
session factory, a mail transport and a ``DispatcherConfig``. ``submit`` hands a
job to the running event loop as a tracked task and returns immediately;
``dispatch`` does the actual work and never raises.
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional, Set
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.exceptions import NotFoundError
from app.models.notification import Notification
from app.services.audit_service import create_audit_log
from app.services.mail_transport import MailTransport
from app.services.notification_service import (
    NotificationService,
    NotificationChannel,
    NotificationStatus,
    Recipient,
    RecipientScope,
    is_category_enabled,
)
from app.utils.validators import validate_email

logger = logging.getLogger(__name__)


@dataclass
class DispatcherConfig:
    enabled: bool = True
    log_errors: bool = True
    max_attempts: int = 3
    pending_grace_seconds: int = 300

    @classmethod
    def from_settings(cls, config: Settings = None) -> "DispatcherConfig":
        notification_config = (config or default_settings).get_notification_config()
        return cls(
            enabled=notification_config["enabled"],
            log_errors=notification_config["log_errors"],
            max_attempts=notification_config["max_attempts"],
            pending_grace_seconds=notification_config["pending_grace_seconds"],
        )


@dataclass
class NotificationJob:
    """一次通知派送工作：模板（或觸發事件）+ 變數 + 收件人範圍"""
    scope: RecipientScope
    template_key: Optional[str] = None
    trigger_event: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    organization_id: Optional[int] = None
    category: Optional[str] = None

    @property
    def name(self) -> str:
        return self.template_key or self.trigger_event or "unknown"


@dataclass
class RecipientResult:
    user_id: int
    notification_id: Optional[int]
    channel: str
    status: str
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == NotificationStatus.SENT.value


@dataclass
class DispatchResult:
    success: bool
    message: str
    template_name: Optional[str] = None
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[RecipientResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationDispatcher:
    """通知派送服務"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        transport: MailTransport,
        config: DispatcherConfig = None
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.config = config or DispatcherConfig()
        self._tasks: Set[asyncio.Task] = set()
        self.submitted_count = 0
        self.completed_count = 0
        self.failed_count = 0
        self.cancelled_count = 0

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def submit(self, job: NotificationJob) -> Optional[asyncio.Task]:
        """
        排程通知派送，立即返回。

        派送在事件迴圈的下一輪執行，呼叫端不等待結果，也不會收到任何例外。

        Returns:
            已排程的 asyncio.Task；停用或沒有執行中的事件迴圈時為 None
        """
        try:
            if not self.config.enabled:
                logger.debug(f"Notification dispatch disabled, dropping {job.name}")
                return None

            loop = asyncio.get_running_loop()
            task = loop.create_task(self._run_job(job), name=f"notification:{job.name}")
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)
            self.submitted_count += 1
            return task

        except RuntimeError as e:
            self._log_error(f"No running event loop to dispatch {job.name}: {str(e)}")
            return None
        except Exception as e:
            self._log_error(f"Notification integration error for {job.name}: {str(e)}")
            return None

    async def _run_job(self, job: NotificationJob) -> DispatchResult:
        result = await self.dispatch(job)
        if result.success:
            logger.info(f"Notification dispatched: {job.name} ({result.sent}/{result.total} sent)")
        else:
            logger.warning(f"Notification failed: {job.name} - {result.message}")
        return result

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)

        if task.cancelled():
            self.cancelled_count += 1
            return

        exc = task.exception()
        if exc is not None:
            self.failed_count += 1
            self._log_error(f"Background notification error in {task.get_name()}: {exc}")
        else:
            self.completed_count += 1

    async def dispatch(self, job: NotificationJob) -> DispatchResult:
        """
        執行通知派送。

        對每個開啟該類別通知的收件人建立一筆 pending 通知並嘗試送達，
        每次嘗試都寫入一筆稽核紀錄。任何錯誤都轉為結果物件，不會拋出。

        Args:
            job: 通知派送工作

        Returns:
            派送結果，含每位收件人的結果
        """
        if not self.config.enabled:
            return DispatchResult(success=False, message="Notification dispatch is disabled", template_name=job.name)

        db = None
        try:
            db = self.session_factory()
            return await self._dispatch(db, job)
        except Exception as e:
            self._log_error(f"Failed to dispatch notification {job.name}: {str(e)}")
            if db is not None:
                db.rollback()
            return DispatchResult(
                success=False,
                message=f"Failed to dispatch notification: {str(e)}",
                template_name=job.name
            )
        finally:
            if db is not None:
                db.close()

    async def _dispatch(self, db: Session, job: NotificationJob) -> DispatchResult:
        service = NotificationService(db)

        try:
            if job.template_key:
                template = service.get_active_template(job.template_key)
            elif job.trigger_event:
                template = service.find_template_for_event(job.trigger_event)
            else:
                return DispatchResult(success=False, message="Job has no template or trigger event")
        except NotFoundError as e:
            logger.warning(f"Template not found for {job.name}: {e.message}")
            return DispatchResult(success=False, message=e.message, template_name=job.name)

        rendered = service.render(template, job.variables)
        category = job.category or rendered.category

        recipients = service.resolve_recipients(job.scope)
        enabled = [r for r in recipients if is_category_enabled(r, rendered.channel, category)]
        skipped = len(recipients) - len(enabled)

        if not recipients:
            logger.info(f"No recipients resolved for {job.name}")

        notifications = [
            service.create_notification(recipient, rendered, category, job.organization_id)
            for recipient in enabled
        ]

        # 各收件人獨立送達，完成順序不保證
        results = await asyncio.gather(*(
            self._deliver(service, notification, recipient)
            for notification, recipient in zip(notifications, enabled)
        ))

        sent = sum(1 for r in results if r.success)
        return DispatchResult(
            success=True,
            message=f"Notification {rendered.template_name} processed",
            template_name=rendered.template_name,
            total=len(recipients),
            sent=sent,
            failed=len(results) - sent,
            skipped=skipped,
            results=list(results)
        )

    async def _deliver(
        self,
        service: NotificationService,
        notification: Notification,
        recipient: Recipient
    ) -> RecipientResult:
        """嘗試送達單一通知，結果寫回通知紀錄與稽核紀錄"""
        notification_id = notification.id
        channel = notification.channel
        subject = notification.subject
        organization_id = notification.organization_id
        error = None

        try:
            if channel == NotificationChannel.EMAIL.value:
                try:
                    if not validate_email(recipient.email or ""):
                        raise ValueError(f"Invalid recipient email: {recipient.email}")
                    await self.transport.send(recipient.email, subject, notification.body)
                except Exception as e:
                    error = str(e) or e.__class__.__name__
                    self._log_error(f"Failed to send email notification to {recipient.email}: {error}")
                    service.mark_failed(notification, error)
                else:
                    service.mark_sent(notification)
            else:
                # 系統通知直接顯示於應用內
                service.mark_sent(notification)

            status = notification.status

        except Exception as e:
            service.db.rollback()
            error = str(e)
            status = NotificationStatus.FAILED.value
            self._log_error(f"Failed to record delivery of notification {notification_id}: {error}")

        create_audit_log(
            service.db,
            action="Notification Sent",
            resource="notification",
            resource_id=notification_id,
            details={
                "recipient": recipient.user_id,
                "channel": channel,
                "subject": subject,
                "success": status == NotificationStatus.SENT.value,
                "error": error,
            },
            organization_id=organization_id,
            severity="info" if error is None else "warning"
        )

        return RecipientResult(
            user_id=recipient.user_id,
            notification_id=notification_id,
            channel=channel,
            status=status,
            error=error
        )

    async def process_pending(self) -> Dict[str, Any]:
        """
        重試未送達的 email 通知。

        只處理 pending/failed 且嘗試次數低於上限的紀錄，由排程器定期呼叫。
        """
        db = None
        try:
            db = self.session_factory()
            service = NotificationService(db)
            notifications = service.get_retryable_notifications(
                self.config.max_attempts,
                pending_grace_seconds=self.config.pending_grace_seconds
            )

            logger.info(f"Processing {len(notifications)} pending notifications")

            processed = 0
            sent = 0
            for notification in notifications:
                user = notification.user
                if not user or not user.is_active:
                    continue

                recipient = Recipient(
                    user_id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    organization_id=user.organization_id,
                    notification_settings=user.notification_settings or {}
                )
                result = await self._deliver(service, notification, recipient)
                processed += 1
                if result.success:
                    sent += 1

            return {
                "success": True,
                "processed": processed,
                "sent": sent,
                "failed": processed - sent
            }

        except Exception as e:
            self._log_error(f"Process pending notifications error: {str(e)}")
            return {"success": False, "error": str(e)}
        finally:
            if db is not None:
                db.close()

    async def drain(self, timeout: Optional[float] = None) -> int:
        """等待所有已排程的派送完成，返回仍未完成的數量"""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)
        return self.pending_count

    def cancel_all(self) -> int:
        """取消所有尚未完成的派送"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        return len(tasks)

    def status(self) -> Dict[str, Any]:
        """取得派送器狀態"""
        return {
            "enabled": self.config.enabled,
            "log_errors": self.config.log_errors,
            "max_attempts": self.config.max_attempts,
            "pending_grace_seconds": self.config.pending_grace_seconds,
            "transport": self.transport.name,
            "pending": self.pending_count,
            "submitted": self.submitted_count,
            "completed": self.completed_count,
            "failed": self.failed_count,
            "cancelled": self.cancelled_count,
        }

    def _log_error(self, message: str):
        if self.config.log_errors:
            logger.error(message)
