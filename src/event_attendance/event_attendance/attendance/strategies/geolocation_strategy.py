from __future__ import annotations

import logging
from datetime import datetime

from ...common.geo import distance_meters
from ...core.constants import DEFAULT_GEOFENCE_RADIUS_METERS, LOCATION_ACCURACY_THRESHOLD_METERS
from ...core.enums import AttendanceMethod
from ...core.exceptions import ErrorCode, LocationError, MethodError, ValidationError
from ...events.model import EventEligibilityContext, GeoPoint
from ..model import AttendanceRecord
from ..status import determine_status_for_event
from .base import CheckInRequest, CheckInStrategy

logger = logging.getLogger(__name__)


class GeolocationStrategy(CheckInStrategy):
    """Geofenced check-in: the reported position must be precise enough and inside the event radius."""

    method = AttendanceMethod.GEOLOCATION

    def __init__(
        self,
        *,
        accuracy_threshold_meters: float = LOCATION_ACCURACY_THRESHOLD_METERS,
        default_radius_meters: float = DEFAULT_GEOFENCE_RADIUS_METERS,
    ):
        self._accuracy_threshold = float(accuracy_threshold_meters)
        self._default_radius = float(default_radius_meters)

    def process(self, request: CheckInRequest, event: EventEligibilityContext, *, now: datetime) -> AttendanceRecord:
        if request.latitude is None or request.longitude is None:
            raise ValidationError("latitude and longitude are required")
        if request.accuracy is None:
            raise ValidationError("accuracy is required")
        if request.accuracy > self._accuracy_threshold:
            raise LocationError(
                f"Location accuracy {request.accuracy:.0f} m exceeds {self._accuracy_threshold:.0f} m",
                code=ErrorCode.LOCATION_ACCURACY_LOW,
            )
        if event.coordinates is None:
            raise MethodError("Event has no coordinates for geolocation check-in", code=ErrorCode.METHOD_NOT_ACCEPTED)

        distance = distance_meters(
            request.latitude,
            request.longitude,
            event.coordinates.latitude,
            event.coordinates.longitude,
        )
        radius = event.attendance_settings.effective_radius(self._default_radius)
        if distance > radius:
            logger.info("Geolocation check-in rejected: %.1f m from event %s (radius %.0f m)", distance, event.event_id, radius)
            raise LocationError(f"Too far from the event location ({distance:.0f} m)", code=ErrorCode.LOCATION_TOO_FAR)

        return self._draft(
            request,
            event,
            status=determine_status_for_event(now, event),
            check_in_time=now,
            check_in_location=GeoPoint(latitude=request.latitude, longitude=request.longitude),
            location_accuracy=request.accuracy,
            notes=request.notes,
            device_info={"type": "mobile", **request.device_info},
        )
