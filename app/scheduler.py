"""
Periodic jobs: retry sweep for undelivered notifications.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class NotificationRetryScheduler:
    """通知重試排程器"""

    def __init__(self, dispatcher: NotificationDispatcher, interval_minutes: int = 10, timezone: str = "Asia/Taipei"):
        self.dispatcher = dispatcher
        self.interval_minutes = max(1, min(interval_minutes, 59))
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self._setup_scheduled_jobs(timezone)

    def _setup_scheduled_jobs(self, timezone: str):
        """設定定時任務"""
        self.scheduler.add_job(
            func=self._retry_job,
            trigger=CronTrigger(minute=f"*/{self.interval_minutes}", timezone=timezone),
            id="notification_retry",
            name="通知重試",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

    async def _retry_job(self):
        result = await self.dispatcher.process_pending()
        if result.get("success"):
            if result.get("processed"):
                logger.info(f"Notification retry: {result['sent']}/{result['processed']} sent")
        else:
            logger.error(f"Notification retry failed: {result.get('error')}")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """啟動排程器（需在事件迴圈中呼叫）"""
        self.scheduler.start()
        logger.info(f"Notification retry scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        """停止排程器"""
        try:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
                logger.info("Notification retry scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping notification retry scheduler: {e}")
