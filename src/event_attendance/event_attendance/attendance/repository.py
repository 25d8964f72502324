from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceMethod, AttendanceStatus, ValidationState
from .model import AttendanceRecord


@dataclass(frozen=True)
class AttendanceQuery:
    """Filters supported by the document store."""

    event_id: Optional[str] = None
    user_id: Optional[str] = None
    status: Optional[AttendanceStatus] = None
    method: Optional[AttendanceMethod] = None
    validation_state: Optional[ValidationState] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    sort_by: str = "created_at"
    descending: bool = True
    offset: int = 0
    limit: Optional[int] = None


class AttendanceRepository(Protocol):
    """Document store for attendance records.

    Note: there is no uniqueness constraint on (event_id, user_id); callers
    check-then-write, so two concurrent check-ins may both insert.
    """

    def get_by_id(self, attendance_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_user_and_event(self, user_id: str, event_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_for_event(self, event_id: str) -> Sequence[AttendanceRecord]:
        """Records of an event ordered by check-in time."""

        raise NotImplementedError

    def query(self, query: AttendanceQuery) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def count(self, query: AttendanceQuery) -> int:
        raise NotImplementedError

    def save(self, record: AttendanceRecord) -> str:
        """Insert or replace; assigns ``record.id`` when missing and returns it."""

        raise NotImplementedError

    def insert_many(self, records: Sequence[AttendanceRecord]) -> int:
        """Atomic batch insert; either every record is written or none."""

        raise NotImplementedError
