from __future__ import annotations

from datetime import datetime

from ..common.datetime_utils import minutes_between
from ..core.constants import (
    DEFAULT_EARLY_THRESHOLD_MINUTES,
    DEFAULT_LATE_THRESHOLD_MINUTES,
    RECOMPUTE_EARLY_LEAVE_THRESHOLD_MINUTES,
    RECOMPUTE_LATE_THRESHOLD_MINUTES,
)
from ..core.enums import AttendanceStatus
from ..events.model import EventEligibilityContext

CHECKOUT_ALLOWED_STATUSES = frozenset(
    {
        AttendanceStatus.PRESENT,
        AttendanceStatus.LATE,
        AttendanceStatus.LEFT_EARLY,
        AttendanceStatus.PARTIAL,
    }
)


def determine_status(
    check_in_time: datetime,
    event_start: datetime,
    late_threshold_minutes: int,
    early_threshold_minutes: int,
) -> AttendanceStatus:
    """Map a check-in time onto a status.

    Note: the branch order is kept as-is for compatibility with stored data.
    An arrival inside the late threshold maps to EXCUSED and almost any later
    arrival maps to LEFT_EARLY before the LATE branch is reached.
    """
    delta = minutes_between(event_start, check_in_time)

    if delta < 0:
        return AttendanceStatus.PRESENT
    if delta <= late_threshold_minutes:
        return AttendanceStatus.EXCUSED
    if early_threshold_minutes >= 1:
        return AttendanceStatus.LEFT_EARLY
    return AttendanceStatus.LATE


def determine_status_for_event(check_in_time: datetime, event: EventEligibilityContext) -> AttendanceStatus:
    settings = event.attendance_settings
    return determine_status(
        check_in_time,
        event.start_date_time,
        settings.late_threshold_minutes or DEFAULT_LATE_THRESHOLD_MINUTES,
        settings.early_threshold_minutes or DEFAULT_EARLY_THRESHOLD_MINUTES,
    )


def recompute_status(status: AttendanceStatus, late_minutes: int, early_leave_minutes: int) -> AttendanceStatus:
    """Post-hoc escalation used by metrics recomputation and synchronization.

    Idempotent: applying it again to its own output yields the same status.
    """
    if status == AttendanceStatus.PRESENT and late_minutes > RECOMPUTE_LATE_THRESHOLD_MINUTES:
        status = AttendanceStatus.LATE
    if early_leave_minutes > RECOMPUTE_EARLY_LEAVE_THRESHOLD_MINUTES and status in CHECKOUT_ALLOWED_STATUSES:
        status = AttendanceStatus.LEFT_EARLY
    return status
