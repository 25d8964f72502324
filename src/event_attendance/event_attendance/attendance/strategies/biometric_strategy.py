from __future__ import annotations

from datetime import datetime

from ...core.enums import AttendanceMethod
from ...core.exceptions import ErrorCode, MethodError
from ...events.model import EventEligibilityContext
from ...integrations.verifiers import BiometricVerifier
from ..model import AttendanceRecord
from ..status import determine_status_for_event
from .base import CheckInRequest, CheckInStrategy


class BiometricStrategy(CheckInStrategy):
    """Like a QR scan but the record is not validated automatically."""

    method = AttendanceMethod.BIOMETRIC

    def __init__(self, verifier: BiometricVerifier):
        self._verifier = verifier

    def process(self, request: CheckInRequest, event: EventEligibilityContext, *, now: datetime) -> AttendanceRecord:
        if not event.attendance_settings.require_biometric:
            raise MethodError("Event does not accept biometric check-in", code=ErrorCode.METHOD_NOT_ACCEPTED)
        if not self._verifier.verify(request.biometric_assertion):
            raise MethodError("Biometric verification failed", code=ErrorCode.METHOD_NOT_ACCEPTED)

        return self._draft(
            request,
            event,
            status=determine_status_for_event(now, event),
            check_in_time=now,
            notes=request.notes or "Biometric verification",
            device_info={"type": "mobile", **request.device_info},
        )
