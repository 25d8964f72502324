from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

import pytest

from src.event_attendance.event_attendance.attendance.factory import CheckInStrategyFactory
from src.event_attendance.event_attendance.attendance.model import AttendanceRecord
from src.event_attendance.event_attendance.attendance.repository import AttendanceQuery
from src.event_attendance.event_attendance.attendance.service import AttendanceService
from src.event_attendance.event_attendance.audit.repository import AuditLogEntry
from src.event_attendance.event_attendance.audit.service import AuditLogger
from src.event_attendance.event_attendance.core.enums import Capability, EventStatus, ValidationState
from src.event_attendance.event_attendance.events.model import (
    AttendanceSettings,
    EventEligibilityContext,
    GeoPoint,
)
from src.event_attendance.event_attendance.integrations.verifiers import QRValidationResult
from src.event_attendance.event_attendance.statistics.service import StatisticsService
from src.event_attendance.event_attendance.users.model import UserProfile
from src.event_attendance.event_attendance.validation.service import ValidationService

EVENT_START = datetime(2026, 3, 10, 10, 0, 0)
EVENT_END = datetime(2026, 3, 10, 12, 0, 0)
ORGANIZER = "org-1"


class InMemoryAttendanceRepo:
    """Stores deep copies so services must save what they change."""

    def __init__(self):
        self._records: dict[str, AttendanceRecord] = {}
        self._lock = threading.Lock()

    def _snapshot(self) -> list[AttendanceRecord]:
        with self._lock:
            return list(self._records.values())

    def get_by_id(self, attendance_id: str) -> Optional[AttendanceRecord]:
        r = self._records.get(attendance_id)
        return copy.deepcopy(r) if r else None

    def get_for_user_and_event(self, user_id: str, event_id: str) -> Optional[AttendanceRecord]:
        for r in self._snapshot():
            if r.user_id == user_id and r.event_id == event_id:
                return copy.deepcopy(r)
        return None

    def list_for_event(self, event_id: str) -> Sequence[AttendanceRecord]:
        items = [copy.deepcopy(r) for r in self._snapshot() if r.event_id == event_id]
        items.sort(key=lambda r: r.check_in_time or datetime.min)
        return items

    def _matches(self, r: AttendanceRecord, q: AttendanceQuery) -> bool:
        if q.event_id and r.event_id != q.event_id:
            return False
        if q.user_id and r.user_id != q.user_id:
            return False
        if q.status and r.status != q.status:
            return False
        if q.method and r.method != q.method:
            return False
        if q.validation_state == ValidationState.PENDING and r.is_validated:
            return False
        if q.validation_state == ValidationState.VALIDATED and not r.is_validated:
            return False
        if q.created_from and (r.created_at is None or r.created_at < q.created_from):
            return False
        if q.created_to and (r.created_at is None or r.created_at > q.created_to):
            return False
        return True

    def query(self, query: AttendanceQuery) -> Sequence[AttendanceRecord]:
        items = [copy.deepcopy(r) for r in self._snapshot() if self._matches(r, query)]
        items.sort(key=lambda r: getattr(r, query.sort_by, None) or datetime.min, reverse=query.descending)
        if query.limit is not None:
            items = items[query.offset : query.offset + query.limit]
        return items

    def count(self, query: AttendanceQuery) -> int:
        return sum(1 for r in self._snapshot() if self._matches(r, query))

    def save(self, record: AttendanceRecord) -> str:
        if not record.id:
            record.id = uuid.uuid4().hex
        with self._lock:
            self._records[record.id] = copy.deepcopy(record)
        return record.id

    def insert_many(self, records: Sequence[AttendanceRecord]) -> int:
        for r in records:
            self.save(r)
        return len(records)

    def all(self) -> list[AttendanceRecord]:
        return self._snapshot()


@dataclass
class InMemoryEvents:
    events: dict[str, EventEligibilityContext] = field(default_factory=dict)
    stats: dict[str, dict] = field(default_factory=dict)

    def get_event_by_id(self, event_id: str) -> Optional[EventEligibilityContext]:
        return self.events.get(event_id)

    def update_attendance_stats(self, event_id: str, stats: dict) -> None:
        self.stats[event_id] = stats


@dataclass
class InMemoryUsers:
    users: dict[str, UserProfile] = field(default_factory=dict)

    def get_user_by_id(self, user_id: str) -> Optional[UserProfile]:
        return self.users.get(user_id)

    def list_by_department(self, department: str):
        return [u for u in self.users.values() if u.department == department]


@dataclass
class FakeAuthorizer:
    grants: set[tuple[str, Capability]] = field(default_factory=set)

    def has_permission(self, user_id: str, capability: Capability) -> bool:
        return (user_id, capability) in self.grants


class InMemoryAuditRepo:
    def __init__(self):
        self.entries: list[AuditLogEntry] = []

    def append(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def list_for_target(self, target_id: str):
        return [e for e in self.entries if e.target_id == target_id]

    def actions(self) -> list[str]:
        return [e.action for e in self.entries]


class FakeQRVerifier:
    """Accepts tokens of the form ``qr:<event_id>``."""

    def validate_qr_code(self, token: str, user_id: str) -> QRValidationResult:
        if not token.startswith("qr:"):
            return QRValidationResult(is_valid=False, reason="Invalid QR code")
        return QRValidationResult(is_valid=True, event_id=token[3:])


class FakeBiometricVerifier:
    def verify(self, assertion: Optional[str]) -> bool:
        return assertion == "match"


def make_event(
    event_id: str = "evt-1",
    *,
    participants=("u1", "u2", "u3"),
    status: EventStatus = EventStatus.IN_PROGRESS,
    settings: Optional[AttendanceSettings] = None,
    coordinates: Optional[GeoPoint] = GeoPoint(48.8566, 2.3522),
    start: datetime = EVENT_START,
    end: datetime = EVENT_END,
) -> EventEligibilityContext:
    return EventEligibilityContext(
        event_id=event_id,
        title="Quarterly meetup",
        start_date_time=start,
        end_date_time=end,
        status=status,
        organizer_id=ORGANIZER,
        co_organizers=frozenset({"co-1"}),
        participants=frozenset(participants),
        attendance_settings=settings or AttendanceSettings(),
        coordinates=coordinates,
    )


@dataclass
class World:
    attendance_repo: InMemoryAttendanceRepo
    events: InMemoryEvents
    users: InMemoryUsers
    authorizer: FakeAuthorizer
    audit_repo: InMemoryAuditRepo
    statistics: StatisticsService
    attendance_service: AttendanceService
    validation_service: ValidationService

    def add_event(self, event_id: str = "evt-1", **kwargs) -> EventEligibilityContext:
        event = make_event(event_id, **kwargs)
        self.events.events[event.event_id] = event
        return event


@pytest.fixture
def world() -> World:
    attendance_repo = InMemoryAttendanceRepo()
    events = InMemoryEvents()
    users = InMemoryUsers(
        {
            uid: UserProfile(user_id=uid, display_name=uid.upper(), department="eng" if uid != "u3" else "ops")
            for uid in ("u1", "u2", "u3", "u4", "u5", ORGANIZER)
        }
    )
    authorizer = FakeAuthorizer()
    audit_repo = InMemoryAuditRepo()
    audit = AuditLogger(audit_repo)
    statistics = StatisticsService(attendance_repo, events, users)
    factory = CheckInStrategyFactory.build(
        qr_verifier=FakeQRVerifier(),
        biometric_verifier=FakeBiometricVerifier(),
        authorizer=authorizer,
    )
    return World(
        attendance_repo=attendance_repo,
        events=events,
        users=users,
        authorizer=authorizer,
        audit_repo=audit_repo,
        statistics=statistics,
        attendance_service=AttendanceService(
            attendance_repo,
            events,
            users,
            strategy_factory=factory,
            statistics=statistics,
            audit=audit,
        ),
        validation_service=ValidationService(
            attendance_repo,
            events,
            authorizer,
            statistics=statistics,
            audit=audit,
        ),
    )
