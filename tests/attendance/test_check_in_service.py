from __future__ import annotations

from datetime import datetime

import pytest

from src.event_attendance.event_attendance.attendance.model import AttendanceRecord
from src.event_attendance.event_attendance.attendance.service import AttendanceListOptions
from src.event_attendance.event_attendance.attendance.strategies.base import CheckInRequest
from src.event_attendance.event_attendance.core.enums import (
    AttendanceMethod,
    AttendanceStatus,
    EventStatus,
    ValidationState,
)
from src.event_attendance.event_attendance.core.exceptions import (
    ConflictError,
    ErrorCode,
    InternalError,
    NotFoundError,
    ValidationError,
    WindowClosedError,
)
from src.event_attendance.event_attendance.events.model import AttendanceSettings


def at(hour: int, minute: int) -> datetime:
    return datetime(2026, 3, 10, hour, minute, 0)


def geo(user_id="u1", event_id="evt-1") -> CheckInRequest:
    return CheckInRequest(
        event_id=event_id,
        user_id=user_id,
        method=AttendanceMethod.GEOLOCATION,
        latitude=48.8567,
        longitude=2.3523,
        accuracy=20.0,
    )


def test_geolocation_check_in_before_start(world):
    world.add_event()
    resp = world.attendance_service.check_in(geo(), now=at(9, 50))

    assert resp.success is True
    assert resp.attendance["status"] == "present"
    assert resp.message == "Attendance recorded successfully!"
    assert resp.requires_validation is False

    stored = world.attendance_repo.get_for_user_and_event("u1", "evt-1")
    assert stored.id == resp.attendance["id"]
    assert stored.marked_by == "u1"
    assert world.events.stats["evt-1"]["total_present"] == 1
    assert world.audit_repo.actions() == ["check_in"]


def test_check_in_inside_late_threshold_needs_validation(world):
    world.add_event()
    resp = world.attendance_service.check_in(geo(), now=at(10, 5))

    assert resp.attendance["status"] == "excused"
    assert resp.message == "Excused absence recorded"
    assert resp.requires_validation is True


def test_unknown_user_is_rejected_and_logged(world):
    world.add_event()
    with pytest.raises(NotFoundError) as exc:
        world.attendance_service.check_in(geo(user_id="ghost"), now=at(9, 50))

    assert exc.value.code == ErrorCode.USER_NOT_FOUND
    assert world.attendance_repo.all() == []
    failed = world.audit_repo.entries[-1]
    assert failed.action == "check_in_failed"
    assert failed.details["code"] == "USER_NOT_FOUND"


def test_unknown_event(world):
    with pytest.raises(NotFoundError) as exc:
        world.attendance_service.check_in(geo(event_id="nope"), now=at(9, 50))
    assert exc.value.code == ErrorCode.EVENT_NOT_FOUND


def test_user_must_be_registered(world):
    world.add_event()
    with pytest.raises(ValidationError) as exc:
        world.attendance_service.check_in(geo(user_id="u4"), now=at(9, 50))
    assert exc.value.code == ErrorCode.NOT_REGISTERED


@pytest.mark.parametrize(
    "status, code",
    [
        (EventStatus.CANCELLED, ErrorCode.EVENT_CANCELLED),
        (EventStatus.COMPLETED, ErrorCode.EVENT_ALREADY_ENDED),
    ],
)
def test_closed_events_refuse_check_in(world, status, code):
    world.add_event(status=status)
    with pytest.raises(ConflictError) as exc:
        world.attendance_service.check_in(geo(), now=at(9, 50))
    assert exc.value.code == code


@pytest.mark.parametrize("now", [at(9, 29), at(11, 1)])
def test_check_in_outside_window(world, now):
    world.add_event()
    with pytest.raises(WindowClosedError) as exc:
        world.attendance_service.check_in(geo(), now=now)
    assert exc.value.code == ErrorCode.ATTENDANCE_WINDOW_CLOSED


def test_method_must_be_accepted_by_event(world):
    world.add_event(settings=AttendanceSettings(require_qr_code=True))
    with pytest.raises(ValidationError):
        world.attendance_service.check_in(geo(), now=at(9, 50))


def test_repeated_check_in_keeps_one_record(world):
    world.add_event()
    world.attendance_service.check_in(geo(), now=at(9, 50))
    resp = world.attendance_service.check_in(geo(), now=at(10, 30))

    records = [r for r in world.attendance_repo.all() if r.user_id == "u1"]
    assert len(records) == 1
    assert resp.attendance["status"] == "left_early"
    assert records[0].metrics.late_minutes == 30


def test_qr_check_in_cannot_be_repeated(world):
    world.add_event(settings=AttendanceSettings(require_qr_code=True))
    req = CheckInRequest(event_id="evt-1", user_id="u1", method=AttendanceMethod.QR_CODE, qr_code_data="qr:evt-1")
    world.attendance_service.check_in(req, now=at(9, 55))

    with pytest.raises(ConflictError) as exc:
        world.attendance_service.check_in(req, now=at(9, 56))
    assert exc.value.code == ErrorCode.ALREADY_MARKED_ATTENDANCE


def test_check_in_after_human_validation_conflicts(world):
    from src.event_attendance.event_attendance.validation.service import AttendanceValidationRequest

    world.add_event()
    resp = world.attendance_service.check_in(geo(), now=at(9, 50))
    world.validation_service.validate_attendance(
        AttendanceValidationRequest(attendance_id=resp.attendance["id"], validated_by="org-1", approved=True)
    )

    with pytest.raises(ConflictError) as exc:
        world.attendance_service.check_in(geo(), now=at(9, 55))
    assert exc.value.code == ErrorCode.ALREADY_MARKED_ATTENDANCE


def test_manual_mark_requires_validation_and_blocks_self_check_in(world):
    world.add_event()
    resp = world.attendance_service.mark_attendance_manually(user_id="u2", event_id="evt-1", marked_by="org-1", now=at(9, 45))

    assert resp.requires_validation is True
    assert resp.attendance["validation"]["is_validated"] is False
    assert resp.attendance["marked_by"] == "org-1"

    with pytest.raises(ConflictError):
        world.attendance_service.check_in(geo(user_id="u2"), now=at(9, 50))


def test_unexpected_failure_is_wrapped(world, monkeypatch):
    world.add_event()

    def boom(record):
        raise RuntimeError("disk full")

    monkeypatch.setattr(world.attendance_repo, "save", boom)
    with pytest.raises(InternalError) as exc:
        world.attendance_service.check_in(geo(), now=at(9, 50))

    assert exc.value.code == ErrorCode.INTERNAL_SERVER_ERROR
    assert world.audit_repo.actions() == ["check_in_failed"]


def test_success_audit_failure_is_wrapped(world, monkeypatch):
    world.add_event()
    append = world.audit_repo.append

    def append_unless_check_in(entry):
        if entry.action == "check_in":
            raise RuntimeError("audit store down")
        append(entry)

    monkeypatch.setattr(world.audit_repo, "append", append_unless_check_in)
    with pytest.raises(InternalError) as exc:
        world.attendance_service.check_in(geo(), now=at(9, 50))

    assert exc.value.code == ErrorCode.INTERNAL_SERVER_ERROR
    assert world.audit_repo.actions() == ["check_in_failed"]


def test_failure_audit_is_best_effort(world, monkeypatch):
    def broken_append(entry):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(world.audit_repo, "append", broken_append)
    with pytest.raises(NotFoundError):
        world.attendance_service.check_in(geo(event_id="nope"), now=at(9, 50))


def test_check_out_through_service(world):
    world.add_event()
    resp = world.attendance_service.check_in(geo(), now=at(9, 50))

    rec = world.attendance_service.check_out(resp.attendance["id"], "u1", now=at(11, 30))

    assert rec.metrics.duration == 100
    assert rec.metrics.early_leave_minutes == 30
    assert rec.status == AttendanceStatus.LEFT_EARLY
    assert world.attendance_repo.get_by_id(rec.id).check_out_time == at(11, 30)
    assert world.audit_repo.actions()[-1] == "check_out"


def test_check_out_unknown_attendance(world):
    with pytest.raises(NotFoundError) as exc:
        world.attendance_service.check_out("missing", "u1", now=at(11, 0))
    assert exc.value.code == ErrorCode.ATTENDANCE_NOT_FOUND


def test_feedback_only_on_own_attendance(world):
    world.add_event()
    resp = world.attendance_service.check_in(geo(), now=at(9, 50))

    with pytest.raises(ValidationError):
        world.attendance_service.add_feedback(resp.attendance["id"], "u2", 5)

    rec = world.attendance_service.add_feedback(resp.attendance["id"], "u1", 5, "great", True, now=at(12, 5))
    assert world.attendance_repo.get_by_id(rec.id).feedback.rating == 5


def test_get_attendances_paginates(world):
    world.add_event()
    for minute, uid in ((45, "u1"), (50, "u2"), (55, "u3")):
        world.attendance_service.check_in(geo(user_id=uid), now=at(9, minute))

    page = world.attendance_service.get_attendances(AttendanceListOptions(page=2, limit=2, event_id="evt-1"))
    assert page.total == 3
    assert page.total_pages == 2
    assert page.has_next is False
    assert [r.user_id for r in page.items] == ["u1"]

    pending = world.attendance_service.get_attendances(
        AttendanceListOptions(validation_state=ValidationState.PENDING, status=AttendanceStatus.PRESENT)
    )
    assert pending.total == 3


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, 101)])
def test_get_attendances_rejects_bad_paging(world, page, limit):
    with pytest.raises(ValidationError):
        world.attendance_service.get_attendances(AttendanceListOptions(page=page, limit=limit))


def test_synchronize_marks_absent_and_corrects(world):
    world.add_event(status=EventStatus.COMPLETED)
    stale = AttendanceRecord(
        event_id="evt-1",
        user_id="u1",
        status=AttendanceStatus.PRESENT,
        method=AttendanceMethod.GEOLOCATION,
        check_in_time=at(10, 20),
    )
    world.attendance_repo.save(stale)

    result = world.attendance_service.synchronize_event_attendances("evt-1", now=at(13, 0))

    assert result.synchronized == 2
    assert result.corrected == 1
    assert result.errors == []
    assert world.attendance_repo.get_by_id(stale.id).status == AttendanceStatus.LATE
    absent = [r for r in world.attendance_repo.all() if r.status == AttendanceStatus.ABSENT]
    assert sorted(r.user_id for r in absent) == ["u2", "u3"]

    again = world.attendance_service.synchronize_event_attendances("evt-1", now=at(13, 5))
    assert (again.synchronized, again.corrected) == (0, 0)
