from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..attendance.model import AttendanceRecord, AttendanceValidation
from ..attendance.repository import AttendanceRepository
from ..attendance.strategies.manual_strategy import can_mark_manually
from ..audit.service import AuditLogger
from ..auth.repository import Authorizer
from ..common.datetime_utils import now_local
from ..common.validators import require_enum, require_non_empty
from ..core.constants import ABSENTEE_NOTE, BULK_BATCH_SIZE, MANUAL_VALIDATION_NOTE
from ..core.enums import AttendanceMethod, AttendanceStatus, AuditAction, BulkOperation, Capability, EventStatus
from ..core.exceptions import AuthorizationError, ConflictError, DomainError, ErrorCode, NotFoundError
from ..events.model import EventEligibilityContext
from ..events.repository import EventDirectory
from ..statistics.service import StatisticsService

logger = logging.getLogger(__name__)

_MARK_STATUS = {
    BulkOperation.MARK_PRESENT: AttendanceStatus.PRESENT,
    BulkOperation.MARK_ABSENT: AttendanceStatus.ABSENT,
    BulkOperation.MARK_EXCUSED: AttendanceStatus.EXCUSED,
}


@dataclass(frozen=True)
class AttendanceValidationRequest:
    attendance_id: str
    validated_by: str
    approved: bool
    notes: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class BulkAttendanceOperation:
    operation: BulkOperation
    event_id: str
    user_ids: Sequence[str]
    notes: Optional[str] = None


@dataclass
class BulkResult:
    """Outcome of a bulk run; one failing item never aborts the others."""

    success: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)


def run_in_batches(
    keys: Sequence[str],
    action: Callable[[str], object],
    *,
    batch_size: int = BULK_BATCH_SIZE,
    key_name: str = "id",
) -> BulkResult:
    """Run ``action`` for every key: concurrent inside a batch, batches one after another."""
    result = BulkResult()
    for start in range(0, len(keys), batch_size):
        batch = list(keys[start : start + batch_size])
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = [(key, pool.submit(action, key)) for key in batch]
            for key, future in futures:
                try:
                    future.result()
                    result.success.append(key)
                except DomainError as e:
                    result.failed.append({key_name: key, "error": str(e)})
                except Exception as e:
                    logger.exception("Bulk item %s failed", key)
                    result.failed.append({key_name: key, "error": str(e) or "Unknown error"})
    return result


class ValidationService:
    """Human validation of attendances, bulk operations and absentee sweeps."""

    def __init__(
        self,
        attendance: AttendanceRepository,
        events: EventDirectory,
        authorizer: Authorizer,
        *,
        statistics: StatisticsService,
        audit: AuditLogger,
        batch_size: int = BULK_BATCH_SIZE,
    ):
        self._attendance = attendance
        self._events = events
        self._authorizer = authorizer
        self._statistics = statistics
        self._audit = audit
        self._batch_size = int(batch_size)

    def _get_event(self, event_id: str) -> EventEligibilityContext:
        event = self._events.get_event_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found", code=ErrorCode.EVENT_NOT_FOUND)
        return event

    def can_validate(self, validator_id: str, event: EventEligibilityContext) -> bool:
        if event.is_organizer(validator_id):
            return True
        if self._authorizer.has_permission(validator_id, Capability.VALIDATE_ATTENDANCES):
            return True
        # TODO: restrict the team capability to members of the validator's own team
        return self._authorizer.has_permission(validator_id, Capability.VALIDATE_TEAM_ATTENDANCES)

    def _require_marker(self, marker_id: str, event: EventEligibilityContext) -> None:
        if not can_mark_manually(self._authorizer, marker_id, event):
            raise AuthorizationError("Not allowed to mark attendance for this event")

    # ------------------------------------------------------------- validation

    def validate_attendance(
        self, request: AttendanceValidationRequest, *, now: Optional[datetime] = None
    ) -> AttendanceRecord:
        require_non_empty(request.validated_by, "validatedBy")
        record = self._attendance.get_by_id(request.attendance_id)
        if record is None:
            raise NotFoundError("Attendance not found", code=ErrorCode.ATTENDANCE_NOT_FOUND)

        event = self._get_event(record.event_id)
        if not self.can_validate(request.validated_by, event):
            raise AuthorizationError("Not allowed to validate this attendance")
        if record.is_validated:
            raise ConflictError("Attendance already validated", code=ErrorCode.ALREADY_VALIDATED)

        record.validate_attendance(request.validated_by, request.approved, request.notes, request.score, at=now)
        self._attendance.save(record)
        self._statistics.update_event_stats(record.event_id)

        self._audit.log(
            AuditAction.ATTENDANCE_VALIDATED,
            target_id=record.id,
            performed_by=request.validated_by,
            details={"approved": request.approved, "notes": request.notes, "original_status": record.status.value},
        )
        logger.info("Attendance %s %s by %s", record.id, "approved" if request.approved else "rejected", request.validated_by)
        return record

    def bulk_validate_attendances(
        self,
        attendance_ids: Sequence[str],
        validated_by: str,
        approved: bool,
        notes: Optional[str] = None,
    ) -> BulkResult:
        result = run_in_batches(
            list(attendance_ids),
            lambda attendance_id: self.validate_attendance(
                AttendanceValidationRequest(
                    attendance_id=attendance_id,
                    validated_by=validated_by,
                    approved=approved,
                    notes=notes,
                )
            ),
            batch_size=self._batch_size,
        )

        self._audit.log(
            AuditAction.BULK_VALIDATE,
            target_id=None,
            performed_by=validated_by,
            details={
                "total_processed": len(attendance_ids),
                "successful": len(result.success),
                "failed": len(result.failed),
                "approved": approved,
            },
        )
        logger.info("Bulk validation by %s: %d ok, %d failed", validated_by, len(result.success), len(result.failed))
        return result

    # --------------------------------------------------------------- marking

    def mark_absentees(self, event_id: str, marked_by: str, *, now: Optional[datetime] = None) -> int:
        """Create one ABSENT record per participant without attendance, in a single batch write."""
        now = now or now_local()
        event = self._get_event(event_id)
        self._require_marker(marked_by, event)
        if event.status not in (EventStatus.IN_PROGRESS, EventStatus.COMPLETED):
            raise ConflictError("Event is not in progress or completed", code=ErrorCode.EVENT_NOT_STARTED)

        attended = {r.user_id for r in self._attendance.list_for_event(event_id)}
        absentees = sorted(event.participants - attended)

        records = []
        for user_id in absentees:
            record = AttendanceRecord(
                event_id=event_id,
                user_id=user_id,
                status=AttendanceStatus.ABSENT,
                method=AttendanceMethod.MANUAL,
                notes=ABSENTEE_NOTE,
            )
            record.mark_created(performed_by=marked_by, at=now)
            records.append(record)

        count = self._attendance.insert_many(records)
        self._statistics.update_event_stats(event_id)

        self._audit.log(
            AuditAction.MARK_ABSENTEES,
            target_id=None,
            performed_by=marked_by,
            details={"event_id": event_id, "marked_count": count, "total_participants": len(event.participants)},
        )
        logger.info("Event %s: %d absentees marked by %s", event_id, count, marked_by)
        return count

    def _mark_manually(
        self,
        event: EventEligibilityContext,
        user_id: str,
        status: AttendanceStatus,
        performed_by: str,
        notes: Optional[str],
        now: datetime,
    ) -> AttendanceRecord:
        draft = AttendanceRecord(
            event_id=event.event_id,
            user_id=user_id,
            status=status,
            method=AttendanceMethod.MANUAL,
            marked_by=performed_by,
            check_in_time=now if status != AttendanceStatus.ABSENT else None,
            notes=notes,
            validation=AttendanceValidation(is_validated=False, validation_notes=MANUAL_VALIDATION_NOTE),
        )
        existing = self._attendance.get_for_user_and_event(user_id, event.event_id)
        if existing is not None:
            existing.merge_check_in(draft, performed_by=performed_by, at=now)
            record = existing
        else:
            draft.mark_created(performed_by=performed_by, at=now)
            record = draft

        record.validate()
        self._attendance.save(record)
        return record

    def _validate_for_user(self, event_id: str, user_id: str, performed_by: str, approved: bool, notes: Optional[str]):
        record = self._attendance.get_for_user_and_event(user_id, event_id)
        if record is None:
            raise NotFoundError("Attendance not found", code=ErrorCode.ATTENDANCE_NOT_FOUND)
        return self.validate_attendance(
            AttendanceValidationRequest(attendance_id=record.id, validated_by=performed_by, approved=approved, notes=notes)
        )

    def bulk_mark_attendance(
        self, operation: BulkAttendanceOperation, performed_by: str, *, now: Optional[datetime] = None
    ) -> BulkResult:
        now = now or now_local()
        kind = require_enum(operation.operation, BulkOperation, "operation")
        event = self._get_event(operation.event_id)
        self._require_marker(performed_by, event)

        if kind in _MARK_STATUS:
            status = _MARK_STATUS[kind]

            def action(user_id: str):
                return self._mark_manually(event, user_id, status, performed_by, operation.notes, now)

        else:
            approved = kind == BulkOperation.VALIDATE

            def action(user_id: str):
                return self._validate_for_user(event.event_id, user_id, performed_by, approved, operation.notes)

        result = run_in_batches(list(operation.user_ids), action, batch_size=self._batch_size, key_name="user_id")
        if kind in _MARK_STATUS:
            self._statistics.update_event_stats(event.event_id)

        self._audit.log(
            AuditAction.BULK_MARK,
            target_id=None,
            performed_by=performed_by,
            details={
                "operation": kind.value,
                "event_id": event.event_id,
                "total_processed": len(operation.user_ids),
                "successful": len(result.success),
                "failed": len(result.failed),
            },
        )
        logger.info("Bulk %s on event %s: %d ok, %d failed", kind.value, event.event_id, len(result.success), len(result.failed))
        return result
