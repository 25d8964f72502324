from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from ..attendance.model import AttendanceRecord
from ..attendance.repository import AttendanceQuery, AttendanceRepository
from ..common.datetime_utils import month_key, now_local
from ..core.enums import AttendanceStatus
from ..core.exceptions import ErrorCode, NotFoundError
from ..events.model import EventEligibilityContext
from ..events.repository import EventDirectory
from ..users.repository import UserDirectory

logger = logging.getLogger(__name__)

_ATTENDED = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)
_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class EventAttendanceStats:
    """Aggregate written back onto the event document."""

    total_present: int
    total_absent: int
    total_late: int
    total_excused: int
    total_left_early: int
    total_partial: int
    total_invited: int
    attendance_rate: float
    punctuality_rate: float

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class AttendanceStats:
    total: int
    by_status: dict[str, int]
    by_method: dict[str, int]
    average_check_in_minute: int
    punctuality_rate: float
    validation_pending: int


@dataclass(frozen=True)
class EventAttendanceReport:
    event: dict
    statistics: dict
    attendances: list[dict]
    timeline: list[dict] = field(default_factory=list)


def _round1(value: float) -> float:
    return round(value, 1)


def _rate(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def _count(records: Iterable[AttendanceRecord], status: AttendanceStatus) -> int:
    return sum(1 for r in records if r.status == status)


def _average_check_in_minute(records: Iterable[AttendanceRecord]) -> int:
    minutes = [r.check_in_time.minute for r in records if r.check_in_time]
    if not minutes:
        return 0
    return int(round(sum(minutes) / len(minutes)))


def _monthly_trends(records: Sequence[AttendanceRecord]) -> list[dict]:
    buckets: dict[str, dict[str, int]] = {}
    for r in records:
        if not r.created_at:
            continue
        data = buckets.setdefault(month_key(r.created_at), {"total": 0, "present": 0, "punctual": 0})
        data["total"] += 1
        if r.status in _ATTENDED:
            data["present"] += 1
        if r.status == AttendanceStatus.PRESENT:
            data["punctual"] += 1

    return [
        {
            "month": month,
            "attendance_rate": int(round(_rate(d["present"], d["total"]))),
            "punctuality_rate": int(round(_rate(d["punctual"], d["present"]))),
            "total": d["total"],
        }
        for month, d in sorted(buckets.items())
    ]


class StatisticsService:
    """Per-event aggregate and on-demand rollups computed from stored records."""

    def __init__(self, attendance: AttendanceRepository, events: EventDirectory, users: Optional[UserDirectory] = None):
        self._attendance = attendance
        self._events = events
        self._users = users

    def _get_event(self, event_id: str) -> EventEligibilityContext:
        event = self._events.get_event_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found", code=ErrorCode.EVENT_NOT_FOUND)
        return event

    @staticmethod
    def compute_event_stats(event: EventEligibilityContext, records: Sequence[AttendanceRecord]) -> EventAttendanceStats:
        present = _count(records, AttendanceStatus.PRESENT)
        late = _count(records, AttendanceStatus.LATE)
        invited = len(event.participants)
        return EventAttendanceStats(
            total_present=present,
            total_absent=_count(records, AttendanceStatus.ABSENT),
            total_late=late,
            total_excused=_count(records, AttendanceStatus.EXCUSED),
            total_left_early=_count(records, AttendanceStatus.LEFT_EARLY),
            total_partial=_count(records, AttendanceStatus.PARTIAL),
            total_invited=invited,
            attendance_rate=_rate(present + late, invited),
            punctuality_rate=_rate(present, present + late),
        )

    def update_event_stats(self, event_id: str) -> EventAttendanceStats:
        """Recompute the event aggregate from scratch and write it back (last writer wins)."""
        event = self._get_event(event_id)
        stats = self.compute_event_stats(event, self._attendance.list_for_event(event_id))
        self._events.update_attendance_stats(event_id, stats.as_dict())
        logger.debug("Event %s stats updated: %s", event_id, stats)
        return stats

    def get_attendance_stats(
        self,
        *,
        user_id: Optional[str] = None,
        event_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> AttendanceStats:
        records = self._attendance.query(
            AttendanceQuery(event_id=event_id, user_id=user_id, created_from=start, created_to=end)
        )
        by_status = Counter(r.status.value for r in records)
        by_method = Counter(r.method.value for r in records)

        present = by_status.get(AttendanceStatus.PRESENT.value, 0)
        attended = present + by_status.get(AttendanceStatus.LATE.value, 0)

        return AttendanceStats(
            total=len(records),
            by_status=dict(by_status),
            by_method=dict(by_method),
            average_check_in_minute=_average_check_in_minute(
                r for r in records if r.status != AttendanceStatus.ABSENT
            ),
            punctuality_rate=_round1(_rate(present, attended)),
            validation_pending=sum(1 for r in records if not r.is_validated),
        )

    def get_event_attendance_report(self, event_id: str) -> EventAttendanceReport:
        event = self._get_event(event_id)
        records = list(self._attendance.list_for_event(event_id))
        stats = self.compute_event_stats(event, records)

        timeline = [
            {
                "time": r.check_in_time,
                "action": f"Check-in: {r.status.value}",
                "user_id": r.user_id,
                "method": r.method.value,
            }
            for r in sorted((r for r in records if r.check_in_time), key=lambda r: r.check_in_time)
        ]

        return EventAttendanceReport(
            event={
                "id": event.event_id,
                "title": event.title,
                "start_date_time": event.start_date_time,
                "end_date_time": event.end_date_time,
                "total_participants": len(event.participants),
            },
            statistics={
                "total_present": stats.total_present,
                "total_absent": stats.total_absent,
                "total_late": stats.total_late,
                "total_excused": stats.total_excused,
                "attendance_rate": _round1(stats.attendance_rate),
                "punctuality_rate": _round1(stats.punctuality_rate),
                "average_check_in_minute": _average_check_in_minute(records),
            },
            attendances=[r.to_document() for r in records],
            timeline=timeline,
        )

    def get_user_attendance_report(self, user_id: str, start: datetime, end: datetime) -> dict:
        user = self._users.get_user_by_id(user_id) if self._users else None
        if self._users and user is None:
            raise NotFoundError("User not found", code=ErrorCode.USER_NOT_FOUND)

        records = list(self._attendance.query(AttendanceQuery(user_id=user_id, created_from=start, created_to=end)))
        total = len(records)
        late = _count(records, AttendanceStatus.LATE)
        attended = sum(1 for r in records if r.status in _ATTENDED)

        return {
            "user": {"id": user_id, "name": user.display_name if user else ""},
            "period": {"start": start, "end": end},
            "statistics": {
                "total_events": total,
                "attended": attended,
                "absent": _count(records, AttendanceStatus.ABSENT),
                "late": late,
                "excused": _count(records, AttendanceStatus.EXCUSED),
                "attendance_rate": _round1(_rate(attended, total)),
                "punctuality_rate": _round1(_rate(attended - late, attended)),
                "average_check_in_minute": _average_check_in_minute(records),
            },
            "attendances": [r.to_document() for r in records],
            "trends": _monthly_trends(records),
        }

    def get_realtime_metrics(self, event_id: str, *, now: Optional[datetime] = None) -> dict:
        event = self._get_event(event_id)
        records = list(self._attendance.list_for_event(event_id))
        current = sum(1 for r in records if r.status in _ATTENDED)
        expected = len(event.participants)

        # 15 minute buckets from 1h before to 2h after the start
        trend = []
        slot = event.start_date_time - timedelta(hours=1)
        last = event.start_date_time + timedelta(hours=2)
        while slot <= last:
            slot_end = slot + timedelta(minutes=15)
            count = sum(1 for r in records if r.check_in_time and slot <= r.check_in_time < slot_end)
            trend.append({"time": slot, "count": count})
            slot = slot_end

        return {
            "current_attendees": current,
            "expected_attendees": expected,
            "attendance_rate": _rate(current, expected),
            "late_arrivals": _count(records, AttendanceStatus.LATE),
            "check_in_trend": trend,
            "last_update": now or now_local(),
        }

    def get_attendance_patterns(self, user_id: str, *, limit: int = 100) -> dict:
        records = list(self._attendance.query(AttendanceQuery(user_id=user_id, limit=limit)))
        total = len(records)

        methods = Counter(r.method for r in records)
        preferred = [
            {"method": m.value, "count": c, "percentage": int(round(_rate(c, total)))}
            for m, c in methods.most_common()
        ]

        check_ins = [r.check_in_time for r in records if r.check_in_time]
        hours = Counter(t.hour for t in check_ins)
        most_common_hour = hours.most_common(1)[0][0] if hours else 9
        by_day = Counter(_DAY_NAMES[t.weekday()] for t in check_ins)

        return {
            "preferred_check_in_methods": preferred,
            "most_common_time_slot": f"{most_common_hour}:00-{most_common_hour + 1}:00",
            "attendance_by_day_of_week": dict(by_day),
        }

    def generate_department_report(self, department: str, start: datetime, end: datetime, *, top: int = 5) -> dict:
        members = list(self._users.list_by_department(department)) if self._users else []

        per_member = []
        all_records: list[AttendanceRecord] = []
        for member in members:
            records = list(
                self._attendance.query(AttendanceQuery(user_id=member.user_id, created_from=start, created_to=end))
            )
            all_records.extend(records)
            attended = sum(1 for r in records if r.status in _ATTENDED)
            per_member.append(
                {
                    "user_id": member.user_id,
                    "name": member.display_name,
                    "events": len(records),
                    "attendance_rate": _round1(_rate(attended, len(records))),
                }
            )

        ranked = sorted((m for m in per_member if m["events"] > 0), key=lambda m: m["attendance_rate"], reverse=True)
        rates = [m["attendance_rate"] for m in ranked]

        return {
            "department": department,
            "period": {"start": start, "end": end},
            "summary": {
                "total_employees": len(members),
                "total_events": len({r.event_id for r in all_records}),
                "average_attendance_rate": _round1(sum(rates) / len(rates)) if rates else 0.0,
                "top_performers": ranked[:top],
                "improvement_needed": [m for m in reversed(ranked) if m["attendance_rate"] < 80][:top],
            },
            "trends": _monthly_trends(all_records),
        }

    def diagnose_attendance_issues(self, event_id: str) -> dict:
        event = self._get_event(event_id)
        records = list(self._attendance.list_for_event(event_id))
        issues = []
        health = 100

        attended_ids = {r.user_id for r in records}
        missing = sorted(event.participants - attended_ids)
        if missing:
            issues.append(
                {
                    "type": "missing_attendance",
                    "description": f"{len(missing)} participants have no attendance record",
                    "affected_users": missing,
                    "severity": "medium",
                    "suggestion": "Mark absentees or check the check-in devices",
                }
            )
            health -= len(missing) * 5

        pending = [r.user_id for r in records if not r.is_validated]
        if pending:
            issues.append(
                {
                    "type": "validation_pending",
                    "description": f"{len(pending)} attendances waiting for validation",
                    "affected_users": pending,
                    "severity": "low",
                    "suggestion": "Validate the pending attendances",
                }
            )
            health -= len(pending) * 2

        cutoff = event.end_date_time + timedelta(minutes=30)
        anomalies = [r.user_id for r in records if r.check_in_time and r.check_in_time > cutoff]
        if anomalies:
            issues.append(
                {
                    "type": "timing_anomaly",
                    "description": f"{len(anomalies)} check-ins after the end of the event",
                    "affected_users": anomalies,
                    "severity": "high",
                    "suggestion": "Check device clocks and correct the timestamps",
                }
            )
            health -= len(anomalies) * 10

        return {"issues": issues, "health_score": max(0, health)}
