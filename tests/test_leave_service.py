from datetime import date

import pytest

from app.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from app.models import AuditLog
from app.services.leave_service import LeaveService

from conftest import RecordingNotifier

TODAY = date(2026, 3, 2)


def _submit(service, employee, start, end, leave_type="vacation", reason="Family trip"):
    return service.submit_request(employee, leave_type, start, end, reason, today=TODAY)


def test_submit_creates_pending_request_and_notifies_admins(db, employee):
    notifier = RecordingNotifier()
    service = LeaveService(db, notifier=notifier)

    leave_request = _submit(service, employee, date(2026, 3, 10), date(2026, 3, 12))

    assert leave_request.status == "pending"
    assert len(notifier.jobs) == 1
    job = notifier.jobs[0]
    assert job.trigger_event == "leave_requested"
    assert job.scope.organization_id == employee.organization_id
    assert job.variables["days"] == 3
    assert db.query(AuditLog).filter(AuditLog.action == "Leave Requested").count() == 1


def test_single_day_leave_is_allowed(db, employee):
    leave_request = _submit(LeaveService(db), employee, date(2026, 3, 10), date(2026, 3, 10))

    assert leave_request.start_date == leave_request.end_date


def test_past_start_date_is_rejected(db, employee):
    with pytest.raises(ValidationError):
        _submit(LeaveService(db), employee, date(2026, 3, 1), date(2026, 3, 3))


def test_inverted_or_too_long_range_is_rejected(db, employee):
    service = LeaveService(db)

    with pytest.raises(ValidationError):
        _submit(service, employee, date(2026, 3, 10), date(2026, 3, 9))
    with pytest.raises(ValidationError):
        _submit(service, employee, date(2026, 3, 10), date(2027, 3, 20))


def test_unknown_leave_type_and_empty_reason_are_rejected(db, employee):
    service = LeaveService(db)

    with pytest.raises(ValidationError):
        _submit(service, employee, date(2026, 3, 10), date(2026, 3, 11), leave_type="holiday")
    with pytest.raises(ValidationError):
        _submit(service, employee, date(2026, 3, 10), date(2026, 3, 11), reason="   ")


def test_overlapping_request_conflicts(db, employee):
    service = LeaveService(db)
    _submit(service, employee, date(2026, 3, 10), date(2026, 3, 12))

    with pytest.raises(ConflictError):
        _submit(service, employee, date(2026, 3, 12), date(2026, 3, 14))


def test_cancelled_request_does_not_block_new_one(db, employee):
    service = LeaveService(db)
    first = _submit(service, employee, date(2026, 3, 10), date(2026, 3, 12))
    service.cancel_request(employee, first.id)

    second = _submit(service, employee, date(2026, 3, 11), date(2026, 3, 11))

    assert second.status == "pending"


def test_cancel_only_pending(db, employee):
    service = LeaveService(db)
    leave_request = _submit(service, employee, date(2026, 3, 10), date(2026, 3, 12))

    cancelled = service.cancel_request(employee, leave_request.id)
    assert cancelled.status == "cancelled"

    with pytest.raises(InvalidStateError):
        service.cancel_request(employee, leave_request.id)

    log = db.query(AuditLog).filter(AuditLog.action == "Leave Request Status Changed").one()
    assert log.details["old_status"] == "pending"
    assert log.details["new_status"] == "cancelled"


def test_cannot_cancel_someone_elses_request(db, employee, make_user):
    leave_request = _submit(LeaveService(db), employee, date(2026, 3, 10), date(2026, 3, 12))

    with pytest.raises(NotFoundError):
        LeaveService(db).cancel_request(make_user(), leave_request.id)


def test_list_filters_by_status_and_year(db, employee):
    service = LeaveService(db)
    march = _submit(service, employee, date(2026, 3, 10), date(2026, 3, 12))
    _submit(service, employee, date(2027, 1, 5), date(2027, 1, 6))
    service.cancel_request(employee, march.id)

    assert len(service.list_requests(employee.id)) == 2
    assert [r.id for r in service.list_requests(employee.id, status="cancelled")] == [march.id]
    assert [r.start_date.year for r in service.list_requests(employee.id, year=2027)] == [2027]

    with pytest.raises(ValidationError):
        service.list_requests(employee.id, status="archived")
