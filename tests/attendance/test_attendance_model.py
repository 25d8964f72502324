from __future__ import annotations

from datetime import datetime

import pytest

from src.event_attendance.event_attendance.attendance.model import AttendanceRecord, AttendanceValidation
from src.event_attendance.event_attendance.core.enums import AttendanceMethod, AttendanceStatus, AuditAction
from src.event_attendance.event_attendance.core.exceptions import ConflictError, ErrorCode, ValidationError
from src.event_attendance.event_attendance.events.model import GeoPoint

START = datetime(2026, 3, 10, 10, 0, 0)
END = datetime(2026, 3, 10, 12, 0, 0)


def at(hour: int, minute: int) -> datetime:
    return datetime(2026, 3, 10, hour, minute, 0)


def make_record(status=AttendanceStatus.PRESENT, method=AttendanceMethod.GEOLOCATION, check_in=at(10, 0)) -> AttendanceRecord:
    return AttendanceRecord(event_id="evt-1", user_id="u1", status=status, method=method, check_in_time=check_in)


def test_check_out_sets_duration_in_minutes():
    rec = make_record()
    rec.check_out(performed_by="u1", at=at(11, 30))

    assert rec.check_out_time == at(11, 30)
    assert rec.metrics.duration == 90
    assert rec.status == AttendanceStatus.PRESENT


def test_check_out_well_before_end_escalates_to_left_early():
    rec = make_record()
    rec.check_out(performed_by="u1", at=at(11, 30), location=GeoPoint(48.0, 2.0), event_end=END)

    assert rec.metrics.early_leave_minutes == 30
    assert rec.status == AttendanceStatus.LEFT_EARLY
    assert rec.check_out_location == GeoPoint(48.0, 2.0)


def test_second_check_out_fails():
    rec = make_record()
    rec.check_out(performed_by="u1", at=at(11, 30))

    with pytest.raises(ConflictError) as exc:
        rec.check_out(performed_by="u1", at=at(11, 45))
    assert exc.value.code == ErrorCode.ALREADY_CHECKED_OUT


@pytest.mark.parametrize("status", [AttendanceStatus.ABSENT, AttendanceStatus.EXCUSED])
def test_check_out_not_allowed_from_status(status):
    rec = make_record(status=status)
    with pytest.raises(ValidationError):
        rec.check_out(performed_by="u1", at=at(11, 30))
    assert rec.check_out_time is None


def test_check_out_before_check_in_fails():
    rec = make_record(check_in=at(10, 30))
    with pytest.raises(ValidationError):
        rec.check_out(performed_by="u1", at=at(10, 0))


def test_every_mutation_appends_one_audit_entry():
    rec = make_record()
    rec.mark_created(performed_by="u1", at=at(10, 0))
    rec.calculate_metrics(START, END, at=at(10, 0))
    rec.mark_as_late(12, performed_by="org-1", at=at(10, 1))
    rec.check_out(performed_by="u1", at=at(11, 0))
    rec.add_feedback(4, "good", True, performed_by="u1", at=at(11, 5))
    rec.validate_attendance("org-1", True, at=at(11, 10))

    assert [e.action for e in rec.audit_log] == [
        AuditAction.CREATED,
        AuditAction.METRICS_CALCULATED,
        AuditAction.MARKED_LATE,
        AuditAction.CHECKED_OUT,
        AuditAction.FEEDBACK_ADDED,
        AuditAction.VALIDATED,
    ]
    assert rec.updated_at == at(11, 10)


def test_validate_attendance_twice_conflicts():
    rec = make_record()
    rec.validate_attendance("org-1", True, "ok", at=at(11, 0))

    with pytest.raises(ConflictError) as exc:
        rec.validate_attendance("org-2", False, at=at(11, 5))
    assert exc.value.code == ErrorCode.ALREADY_VALIDATED
    assert rec.validation.validated_by == "org-1"
    assert rec.validation.is_validated is True


def test_rejection_marks_validator_but_not_validated():
    rec = make_record()
    rec.validate_attendance("org-1", False, "not seen", at=at(11, 0))

    assert rec.validation.is_validated is False
    assert rec.is_validated is True
    assert rec.audit_log[-1].action == AuditAction.REJECTED


@pytest.mark.parametrize("rating", [0, 6, 2.5, None])
def test_feedback_rating_out_of_range(rating):
    rec = make_record()
    with pytest.raises(ValidationError):
        rec.add_feedback(rating, performed_by="u1")
    assert rec.feedback is None


def test_calculate_metrics_escalates_present_to_late():
    rec = make_record(check_in=at(10, 20))
    metrics = rec.calculate_metrics(START, END, at=at(10, 20))

    assert metrics.late_minutes == 20
    assert metrics.participation_score == 60
    assert rec.status == AttendanceStatus.LATE


def test_can_be_updated_rules():
    assert make_record().can_be_updated()

    validated = make_record()
    validated.validation = AttendanceValidation(is_validated=True, validated_by="org-1")
    assert not validated.can_be_updated()

    manual = make_record(method=AttendanceMethod.MANUAL)
    manual.marked_by = "org-1"
    assert not manual.can_be_updated()


def test_validate_reports_check_out_before_check_in():
    rec = make_record(check_in=at(11, 0))
    rec.check_out_time = at(10, 0)

    with pytest.raises(ValidationError, match="checkOutTime must be after checkInTime"):
        rec.validate()


def test_document_keeps_nested_blocks():
    rec = make_record()
    rec.check_in_location = GeoPoint(48.8566, 2.3522)
    rec.mark_created(performed_by="u1", at=at(10, 0))
    rec.check_out(performed_by="u1", at=at(11, 30), event_end=END)
    rec.add_feedback(5, performed_by="u1", at=at(11, 31))

    restored = AttendanceRecord.from_document(rec.to_document())

    assert restored == rec


def test_mark_as_late_forces_status_and_stores_minutes():
    rec = make_record(status=AttendanceStatus.PRESENT)
    rec.mark_as_late(12, performed_by="org-1", at=at(10, 20))

    assert rec.status == AttendanceStatus.LATE
    assert rec.metrics.late_minutes == 12
    assert len(rec.audit_log) == 1
    entry = rec.audit_log[0]
    assert entry.action == AuditAction.MARKED_LATE
    assert entry.performed_by == "org-1"
    assert (entry.old_value, entry.new_value) == ("present", 12)


def test_mark_as_left_early_forces_status_and_stores_minutes():
    rec = make_record(status=AttendanceStatus.EXCUSED)
    rec.mark_as_left_early(25, performed_by="org-1", at=at(11, 40))

    assert rec.status == AttendanceStatus.LEFT_EARLY
    assert rec.metrics.early_leave_minutes == 25
    assert len(rec.audit_log) == 1
    entry = rec.audit_log[0]
    assert entry.action == AuditAction.MARKED_LEFT_EARLY
    assert (entry.old_value, entry.new_value) == ("excused", 25)
    assert rec.updated_at == at(11, 40)


@pytest.mark.parametrize("override", ["mark_as_late", "mark_as_left_early"])
def test_override_rejects_negative_minutes(override):
    rec = make_record()
    with pytest.raises(ValidationError):
        getattr(rec, override)(-1, performed_by="org-1", at=at(10, 20))

    assert rec.status == AttendanceStatus.PRESENT
    assert rec.audit_log == []
