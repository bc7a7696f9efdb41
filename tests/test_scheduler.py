import asyncio

from app.models import Notification
from app.scheduler import NotificationRetryScheduler
from app.services.notification_dispatcher import DispatcherConfig, NotificationDispatcher, NotificationJob
from app.services.notification_service import OrganizationAdmins

from conftest import FailingTransport


def test_retry_job_is_registered_and_stops(dispatcher):
    async def scenario():
        scheduler = NotificationRetryScheduler(dispatcher, interval_minutes=5, timezone="Asia/Taipei")
        job = scheduler.scheduler.get_job("notification_retry")
        scheduler.start()
        started = scheduler.running
        scheduler.stop()
        return job, started, scheduler.running

    job, started, running_after_stop = asyncio.run(scenario())

    assert job is not None
    assert "*/5" in str(job.trigger)
    assert started is True
    assert running_after_stop is False


def test_interval_is_clamped(dispatcher):
    async def build(minutes):
        return NotificationRetryScheduler(dispatcher, interval_minutes=minutes).interval_minutes

    assert asyncio.run(build(0)) == 1
    assert asyncio.run(build(120)) == 59


def test_retry_job_delivers_failed_notifications(db, templates, make_user, session_factory, dispatcher, transport, organization):
    make_user(role="admin")
    failing = NotificationDispatcher(session_factory, FailingTransport(), DispatcherConfig(log_errors=False))
    asyncio.run(failing.dispatch(NotificationJob(template_key="leave_requested", scope=OrganizationAdmins(organization.id))))

    async def scenario():
        scheduler = NotificationRetryScheduler(dispatcher)
        await scheduler._retry_job()

    asyncio.run(scenario())

    assert len(transport.sent) == 1
    db.expire_all()
    assert db.query(Notification).one().status == "sent"
