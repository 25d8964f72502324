from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import minutes_between
from ..core.constants import RECOMPUTE_EARLY_LEAVE_THRESHOLD_MINUTES
from ..core.enums import AttendanceMethod, EngagementLevel


@dataclass
class AttendanceMetrics:
    late_minutes: int = 0
    early_leave_minutes: int = 0
    duration: Optional[int] = None
    participation_score: Optional[int] = None
    engagement_level: Optional[EngagementLevel] = None


_ENGAGEMENT_BY_METHOD = {
    AttendanceMethod.QR_CODE: EngagementLevel.HIGH,
    AttendanceMethod.BIOMETRIC: EngagementLevel.HIGH,
    AttendanceMethod.GEOLOCATION: EngagementLevel.MEDIUM,
    AttendanceMethod.MANUAL: EngagementLevel.LOW,
}


def late_minutes(check_in_time: datetime, event_start: datetime) -> int:
    return int(round(max(0.0, minutes_between(event_start, check_in_time))))


def duration_minutes(check_in_time: datetime, check_out_time: datetime) -> int:
    return int(round(max(0.0, minutes_between(check_in_time, check_out_time))))


def early_leave_minutes(check_out_time: datetime, event_end: datetime) -> int:
    """Minutes left before the end, only counted past the early-leave threshold."""
    early = minutes_between(check_out_time, event_end)
    if early > RECOMPUTE_EARLY_LEAVE_THRESHOLD_MINUTES:
        return int(round(early))
    return 0


def participation_score(check_in_time: datetime, event_start: datetime) -> int:
    """0-100: progressive penalty when late, small penalty when far too early."""
    delta = minutes_between(event_start, check_in_time)
    score = 100.0
    if delta > 0:
        score = max(0.0, 100 - delta * 2)
    elif delta < -30:
        score = 90.0
    return int(round(score))


def engagement_level(method: AttendanceMethod) -> EngagementLevel:
    return _ENGAGEMENT_BY_METHOD.get(method, EngagementLevel.MEDIUM)


def calculate_metrics(
    *,
    method: AttendanceMethod,
    check_in_time: Optional[datetime],
    check_out_time: Optional[datetime],
    event_start: datetime,
    event_end: datetime,
) -> AttendanceMetrics:
    if check_in_time is None:
        return AttendanceMetrics()

    duration = None
    early = 0
    if check_out_time is not None:
        duration = duration_minutes(check_in_time, check_out_time)
        early = early_leave_minutes(check_out_time, event_end)

    return AttendanceMetrics(
        late_minutes=late_minutes(check_in_time, event_start),
        early_leave_minutes=early,
        duration=duration,
        participation_score=participation_score(check_in_time, event_start),
        engagement_level=engagement_level(method),
    )
