from __future__ import annotations

from enum import Enum


class AttendanceStatus(str, Enum):
    """Canonical attendance status stored on every record."""

    PRESENT = "present"
    LATE = "late"
    LEFT_EARLY = "left_early"
    EXCUSED = "excused"
    ABSENT = "absent"
    PARTIAL = "partial"


class AttendanceMethod(str, Enum):
    """How the attendance was captured."""

    QR_CODE = "qr_code"
    GEOLOCATION = "geolocation"
    MANUAL = "manual"
    BIOMETRIC = "biometric"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EngagementLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Capability(str, Enum):
    """Capabilities checked against the authorization service."""

    VALIDATE_ATTENDANCES = "validate_attendances"
    VALIDATE_TEAM_ATTENDANCES = "validate_team_attendances"


class AuditAction(str, Enum):
    # entries of the per-record audit trail
    CREATED = "created"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    VALIDATED = "validated"
    REJECTED = "rejected"
    MARKED_LATE = "marked_late"
    MARKED_LEFT_EARLY = "marked_left_early"
    METRICS_CALCULATED = "metrics_calculated"
    FEEDBACK_ADDED = "feedback_added"

    # entries of the global audit log
    CHECK_IN = "check_in"
    CHECK_IN_FAILED = "check_in_failed"
    CHECK_OUT = "check_out"
    ATTENDANCE_VALIDATED = "attendance_validated"
    BULK_VALIDATE = "bulk_validate_attendances"
    BULK_MARK = "bulk_mark_attendance"
    MARK_ABSENTEES = "mark_absentees"


class BulkOperation(str, Enum):
    MARK_PRESENT = "mark_present"
    MARK_ABSENT = "mark_absent"
    MARK_EXCUSED = "mark_excused"
    VALIDATE = "validate"
    REJECT = "reject"


class ValidationState(str, Enum):
    """Filter values for listing attendances by validation state."""

    PENDING = "pending"
    VALIDATED = "validated"
