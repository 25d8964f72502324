from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceMethod, AttendanceStatus
from ...events.model import EventEligibilityContext
from ..model import AttendanceRecord


@dataclass(frozen=True)
class CheckInRequest:
    """Input of a check-in; method specific fields are optional."""

    event_id: str
    user_id: str
    method: AttendanceMethod
    qr_code_data: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    biometric_assertion: Optional[str] = None
    marked_by: Optional[str] = None
    status: Optional[AttendanceStatus] = None
    check_in_time: Optional[datetime] = None
    notes: Optional[str] = None
    device_info: dict = field(default_factory=dict)


class CheckInStrategy(ABC):
    """Strategy Pattern: method specific preconditions producing a draft record.

    Strategies never touch storage; they return an unsaved ``AttendanceRecord``
    or raise a typed ``DomainError``.
    """

    method: AttendanceMethod

    @abstractmethod
    def process(self, request: CheckInRequest, event: EventEligibilityContext, *, now: datetime) -> AttendanceRecord:
        raise NotImplementedError

    def _draft(self, request: CheckInRequest, event: EventEligibilityContext, **fields) -> AttendanceRecord:
        fields.setdefault("device_info", dict(request.device_info))
        return AttendanceRecord(event_id=event.event_id, user_id=request.user_id, method=self.method, **fields)
