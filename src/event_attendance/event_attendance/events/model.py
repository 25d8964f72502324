from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional

from ..core.constants import (
    DEFAULT_EARLY_THRESHOLD_MINUTES,
    DEFAULT_GEOFENCE_RADIUS_METERS,
    DEFAULT_LATE_THRESHOLD_MINUTES,
)
from ..core.enums import AttendanceMethod, EventStatus


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class CheckInWindow:
    before_minutes: int = 30
    after_minutes: int = 60


@dataclass(frozen=True)
class AttendanceSettings:
    require_qr_code: bool = False
    require_geolocation: bool = False
    require_biometric: bool = False
    check_in_window: CheckInWindow = field(default_factory=CheckInWindow)
    late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES
    early_threshold_minutes: int = DEFAULT_EARLY_THRESHOLD_MINUTES
    geofence_radius: Optional[float] = None

    def required_methods(self) -> list[AttendanceMethod]:
        """Accepted methods; every method is accepted when none is required."""
        methods = []
        if self.require_qr_code:
            methods.append(AttendanceMethod.QR_CODE)
        if self.require_geolocation:
            methods.append(AttendanceMethod.GEOLOCATION)
        if self.require_biometric:
            methods.append(AttendanceMethod.BIOMETRIC)
        return methods or list(AttendanceMethod)

    def restricts_methods(self) -> bool:
        return self.require_qr_code or self.require_geolocation or self.require_biometric

    def effective_radius(self, default: float = DEFAULT_GEOFENCE_RADIUS_METERS) -> float:
        return self.geofence_radius or default


@dataclass(frozen=True)
class EventEligibilityContext:
    """Read-only projection of an event, owned by the event directory."""

    event_id: str
    title: str
    start_date_time: datetime
    end_date_time: datetime
    status: EventStatus
    organizer_id: str
    co_organizers: FrozenSet[str] = frozenset()
    participants: FrozenSet[str] = frozenset()
    attendance_settings: AttendanceSettings = field(default_factory=AttendanceSettings)
    coordinates: Optional[GeoPoint] = None

    def is_organizer(self, user_id: str) -> bool:
        return user_id == self.organizer_id or user_id in self.co_organizers
