from __future__ import annotations

from datetime import datetime

from ...auth.repository import Authorizer
from ...common.validators import require_enum
from ...core.constants import MANUAL_VALIDATION_NOTE
from ...core.enums import AttendanceMethod, AttendanceStatus, Capability
from ...core.exceptions import AuthorizationError
from ...events.model import EventEligibilityContext
from ..model import AttendanceRecord, AttendanceValidation
from .base import CheckInRequest, CheckInStrategy


def can_mark_manually(authorizer: Authorizer, marker_id: str, event: EventEligibilityContext) -> bool:
    """Organizers always can; others need the global validation capability."""
    if event.is_organizer(marker_id):
        return True
    return authorizer.has_permission(marker_id, Capability.VALIDATE_ATTENDANCES)


class ManualStrategy(CheckInStrategy):
    """Attendance entered by an organizer; always waits for validation."""

    method = AttendanceMethod.MANUAL

    def __init__(self, authorizer: Authorizer):
        self._authorizer = authorizer

    def process(self, request: CheckInRequest, event: EventEligibilityContext, *, now: datetime) -> AttendanceRecord:
        marker = request.marked_by or request.user_id
        if not can_mark_manually(self._authorizer, marker, event):
            raise AuthorizationError("Not allowed to mark attendance manually")
        status = require_enum(request.status, AttendanceStatus, "status") if request.status else AttendanceStatus.PRESENT

        return self._draft(
            request,
            event,
            status=status,
            check_in_time=request.check_in_time or now,
            marked_by=marker,
            notes=request.notes,
            validation=AttendanceValidation(is_validated=False, validation_notes=MANUAL_VALIDATION_NOTE),
        )
