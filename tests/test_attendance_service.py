from datetime import date

import pytest

from app.config import settings
from app.exceptions import ConflictError, InvalidStateError, ValidationError
from app.models import AttendanceRecord
from app.services.attendance_service import AttendanceService
from app.utils.datetime_utils import ensure_utc

from conftest import RecordingNotifier, taipei


def test_check_in_before_cutoff_is_present(db, employee):
    service = AttendanceService(db)

    record = service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

    assert record.status == "present"
    assert record.date == date(2026, 3, 2)
    assert record.break_duration == 0
    assert record.work_hours == 0


def test_check_in_at_cutoff_is_present(db, employee):
    record = AttendanceService(db).check_in(employee.id, now=taipei(2026, 3, 2, 9, 15, 59))

    assert record.status == "present"


def test_check_in_after_cutoff_is_late(db, employee):
    record = AttendanceService(db).check_in(employee.id, now=taipei(2026, 3, 2, 9, 20))

    assert record.status == "late"


def test_remote_check_in_is_never_late(db, employee):
    record = AttendanceService(db).check_in(employee.id, now=taipei(2026, 3, 2, 11, 0), work_location="remote")

    assert record.status == "remote"


def test_late_check_in_notifies_organization_admins(db, employee):
    notifier = RecordingNotifier()
    AttendanceService(db, notifier=notifier).check_in(employee.id, now=taipei(2026, 3, 2, 9, 20))

    assert len(notifier.jobs) == 1
    job = notifier.jobs[0]
    assert job.trigger_event == "attendance_late"
    assert job.scope.organization_id == employee.organization_id
    assert job.variables["employeeName"] == "Ann Employee"
    assert job.variables["checkInTime"] == "09:20"


def test_on_time_check_in_does_not_notify(db, employee):
    notifier = RecordingNotifier()
    AttendanceService(db, notifier=notifier).check_in(employee.id, now=taipei(2026, 3, 2, 8, 55))

    assert notifier.jobs == []


def test_second_check_in_conflicts_and_keeps_record(db, employee):
    service = AttendanceService(db)
    first = service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0), notes="first")
    first_check_in = ensure_utc(first.check_in_at)

    with pytest.raises(ConflictError):
        service.check_in(employee.id, now=taipei(2026, 3, 2, 10, 0), notes="second")

    db.expire_all()
    records = db.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id).all()
    assert len(records) == 1
    assert ensure_utc(records[0].check_in_at) == first_check_in
    assert records[0].notes == "first"


def test_check_in_overwrites_record_without_check_in(db, employee):
    db.add(AttendanceRecord(employee_id=employee.id, date=date(2026, 3, 2), status="present"))
    db.commit()

    record = AttendanceService(db).check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

    assert record.check_in_at is not None
    assert db.query(AttendanceRecord).count() == 1


def test_invalid_work_location_is_rejected(db, employee):
    with pytest.raises(ValidationError):
        AttendanceService(db).check_in(employee.id, now=taipei(2026, 3, 2, 9, 0), work_location="moon")


def test_break_accounting_and_half_day(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

    on_break = service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))
    assert on_break.status == "on-break"

    back = service.end_break(employee.id, now=taipei(2026, 3, 2, 12, 47))
    assert back.break_duration == 47
    assert back.status == "present"
    assert back.break_start_at is None

    record = service.check_out(employee.id, now=taipei(2026, 3, 2, 13, 30))

    # 270 total minutes - 47 break minutes = 223 minutes
    assert record.work_hours == 3.7
    assert record.status == "half-day"


def test_full_day_stays_present(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
    service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))
    service.end_break(employee.id, now=taipei(2026, 3, 2, 13, 0))

    record = service.check_out(employee.id, now=taipei(2026, 3, 2, 18, 0), overtime=1.5)

    assert record.work_hours == 8.0
    assert record.break_duration == 60
    assert record.overtime == 1.5
    assert record.status == "present"


def test_multiple_breaks_accumulate(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
    service.start_break(employee.id, now=taipei(2026, 3, 2, 10, 0))
    service.end_break(employee.id, now=taipei(2026, 3, 2, 10, 15))
    service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))

    record = service.end_break(employee.id, now=taipei(2026, 3, 2, 12, 30))

    assert record.break_duration == 45


def test_break_minutes_round_half_up(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
    service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0, 0))

    record = service.end_break(employee.id, now=taipei(2026, 3, 2, 12, 10, 30))

    assert record.break_duration == 11


def test_check_out_with_open_break_matches_explicit_end_break(db, make_user):
    implicit_employee = make_user()
    explicit_employee = make_user()
    service = AttendanceService(db)

    for employee in (implicit_employee, explicit_employee):
        service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
        service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))

    service.end_break(explicit_employee.id, now=taipei(2026, 3, 2, 12, 30))
    explicit = service.check_out(explicit_employee.id, now=taipei(2026, 3, 2, 12, 30))
    implicit = service.check_out(implicit_employee.id, now=taipei(2026, 3, 2, 12, 30))

    assert implicit.break_duration == explicit.break_duration == 30
    assert implicit.work_hours == explicit.work_hours == 3.0
    assert implicit.status == explicit.status == "half-day"
    assert implicit.break_start_at is None


def test_late_is_not_downgraded_to_half_day(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 10, 0))

    record = service.check_out(employee.id, now=taipei(2026, 3, 2, 12, 0))

    assert record.work_hours == 2.0
    assert record.status == "late"


def test_remote_is_not_downgraded_to_half_day(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0), work_location="remote")

    record = service.check_out(employee.id, now=taipei(2026, 3, 2, 11, 0))

    assert record.status == "remote"


def test_second_check_out_conflicts_and_keeps_first_result(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
    first = service.check_out(employee.id, now=taipei(2026, 3, 2, 18, 0))
    first_hours = first.work_hours

    with pytest.raises(ConflictError):
        service.check_out(employee.id, now=taipei(2026, 3, 2, 19, 0))

    db.expire_all()
    record = db.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id).one()
    assert record.work_hours == first_hours == 9.0
    assert ensure_utc(record.check_out_at) == taipei(2026, 3, 2, 18, 0)


def test_check_out_without_check_in_is_invalid(db, employee):
    with pytest.raises(InvalidStateError):
        AttendanceService(db).check_out(employee.id, now=taipei(2026, 3, 2, 18, 0))


def test_break_without_check_in_is_invalid(db, employee):
    service = AttendanceService(db)

    with pytest.raises(InvalidStateError):
        service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))
    with pytest.raises(InvalidStateError):
        service.end_break(employee.id, now=taipei(2026, 3, 2, 12, 0))


def test_break_state_transitions_are_enforced(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

    with pytest.raises(InvalidStateError):
        service.end_break(employee.id, now=taipei(2026, 3, 2, 10, 0))

    service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))
    with pytest.raises(InvalidStateError):
        service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 5))

    service.check_out(employee.id, now=taipei(2026, 3, 2, 18, 0))
    with pytest.raises(InvalidStateError):
        service.start_break(employee.id, now=taipei(2026, 3, 2, 18, 30))


def test_notes_are_appended(db, employee):
    service = AttendanceService(db)
    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0), notes="on site")
    service.start_break(employee.id, now=taipei(2026, 3, 2, 12, 0), notes="lunch")

    record = service.check_out(employee.id, now=taipei(2026, 3, 2, 18, 0), notes="done")

    assert record.notes == "on site | Break start: lunch | Check-out: done"


def test_concurrent_break_start_is_revalidated(session_factory, employee):
    first_session = session_factory()
    second_session = session_factory()
    try:
        AttendanceService(first_session).check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))
        # 先載入舊版本的記錄
        stale = first_session.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id).one()
        assert stale.break_start_at is None

        AttendanceService(second_session).start_break(employee.id, now=taipei(2026, 3, 2, 12, 0))

        with pytest.raises(InvalidStateError):
            AttendanceService(first_session).start_break(employee.id, now=taipei(2026, 3, 2, 12, 1))

        record = second_session.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id).one()
        second_session.refresh(record)
        assert ensure_utc(record.break_start_at) == taipei(2026, 3, 2, 12, 0)
    finally:
        first_session.close()
        second_session.close()



def test_racing_check_ins_resolve_on_unique_constraint(session_factory, employee, monkeypatch):
    first_session = session_factory()
    second_session = session_factory()
    try:
        winner = AttendanceService(first_session)
        loser = AttendanceService(second_session)
        # 第二個請求讀取時尚未看到第一筆記錄
        monkeypatch.setattr(loser, "_get_record", lambda employee_id, day: None)

        winner.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

        with pytest.raises(ConflictError) as exc_info:
            loser.check_in(employee.id, now=taipei(2026, 3, 2, 9, 1))

        assert exc_info.value.error == "Already checked in"
        records = first_session.query(AttendanceRecord).filter(AttendanceRecord.employee_id == employee.id).all()
        assert len(records) == 1
        assert ensure_utc(records[0].check_in_at) == taipei(2026, 3, 2, 9, 0)
    finally:
        first_session.close()
        second_session.close()


def test_get_today(db, employee):
    service = AttendanceService(db)
    assert service.get_today(employee.id, now=taipei(2026, 3, 2, 8, 0)) is None

    service.check_in(employee.id, now=taipei(2026, 3, 2, 9, 0))

    assert service.get_today(employee.id, now=taipei(2026, 3, 2, 17, 0)) is not None
    assert service.get_today(employee.id, now=taipei(2026, 3, 3, 8, 0)) is None


def _work_day(service, employee_id, day, start_hour, end_hour):
    service.check_in(employee_id, now=taipei(2026, 3, day, start_hour, 0))
    service.check_out(employee_id, now=taipei(2026, 3, day, end_hour, 0))


def test_history_is_newest_first_with_summary(db, employee):
    service = AttendanceService(db)
    _work_day(service, employee.id, 2, 9, 18)
    _work_day(service, employee.id, 3, 9, 12)
    db.add(AttendanceRecord(employee_id=employee.id, date=date(2026, 3, 4), status="present"))
    db.commit()

    history = service.history(employee.id)

    assert [r.date for r in history["records"]] == [date(2026, 3, 4), date(2026, 3, 3), date(2026, 3, 2)]
    assert history["summary"] == {
        "total_days": 3,
        "present_days": 2,
        "absent_days": 1,
        "total_hours": 12.0,
        "total_break_time": 0,
        "average_hours": 4.0,
    }


def test_history_date_filters(db, employee):
    service = AttendanceService(db)
    for day in (2, 3, 4):
        _work_day(service, employee.id, day, 9, 17)

    records = list(service.iter_history(employee.id, start_date=date(2026, 3, 3), end_date=date(2026, 3, 3)))

    assert [r.date for r in records] == [date(2026, 3, 3)]


def test_history_is_capped(db, employee, monkeypatch):
    monkeypatch.setattr(settings, "ATTENDANCE_HISTORY_LIMIT", 2)
    service = AttendanceService(db)
    for day in (2, 3, 4):
        _work_day(service, employee.id, day, 9, 17)

    records = list(service.iter_history(employee.id))

    assert [r.date for r in records] == [date(2026, 3, 4), date(2026, 3, 3)]


def test_history_iterator_is_restartable(db, employee):
    service = AttendanceService(db)
    _work_day(service, employee.id, 2, 9, 17)

    assert len(list(service.iter_history(employee.id))) == 1
    assert len(list(service.iter_history(employee.id))) == 1


def test_history_rejects_inverted_range(db, employee):
    with pytest.raises(ValidationError):
        AttendanceService(db).iter_history(employee.id, start_date=date(2026, 3, 5), end_date=date(2026, 3, 1))


def test_empty_history_summary(db, employee):
    history = AttendanceService(db).history(employee.id)

    assert history["records"] == []
    assert history["summary"]["average_hours"] == 0
