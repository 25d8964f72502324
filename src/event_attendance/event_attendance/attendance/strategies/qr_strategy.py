from __future__ import annotations

from datetime import datetime

from ...core.constants import SYSTEM_ACTOR
from ...core.enums import AttendanceMethod
from ...core.exceptions import ErrorCode, MethodError
from ...events.model import EventEligibilityContext
from ...integrations.verifiers import QRCodeVerifier
from ..model import AttendanceRecord, AttendanceValidation, QRCodeValidation
from ..status import determine_status_for_event
from .base import CheckInRequest, CheckInStrategy


class QRCodeStrategy(CheckInStrategy):
    """QR scan. A verified token is a trusted proof, the record is validated by the system."""

    method = AttendanceMethod.QR_CODE

    def __init__(self, verifier: QRCodeVerifier):
        self._verifier = verifier

    def process(self, request: CheckInRequest, event: EventEligibilityContext, *, now: datetime) -> AttendanceRecord:
        if not event.attendance_settings.require_qr_code:
            raise MethodError("Event does not accept QR code check-in", code=ErrorCode.INVALID_QR_CODE)
        if not request.qr_code_data:
            raise MethodError("QR code data is missing", code=ErrorCode.INVALID_QR_CODE)

        result = self._verifier.validate_qr_code(request.qr_code_data, request.user_id)
        if not result.is_valid:
            raise MethodError(result.reason or "Invalid QR code", code=ErrorCode.INVALID_QR_CODE)
        if result.event_id is not None and result.event_id != event.event_id:
            raise MethodError("QR code belongs to another event", code=ErrorCode.INVALID_QR_CODE)

        return self._draft(
            request,
            event,
            status=determine_status_for_event(now, event),
            check_in_time=now,
            notes=request.notes or "QR code scan",
            device_info={"type": "web", **request.device_info},
            qr_code_validation=QRCodeValidation(qr_code_data=request.qr_code_data, validated_at=now),
            validation=AttendanceValidation(
                is_validated=True,
                validated_by=SYSTEM_ACTOR,
                validated_at=now,
                validation_notes="QR code verified",
            ),
        )
