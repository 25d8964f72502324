from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from ..audit.service import AuditLogger
from ..common.datetime_utils import now_local
from ..common.validators import require_enum, require_non_empty, require_range
from ..core.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, SYSTEM_ACTOR
from ..core.enums import (
    AttendanceMethod,
    AttendanceStatus,
    AuditAction,
    EventStatus,
    ValidationState,
)
from ..core.exceptions import (
    ConflictError,
    DomainError,
    ErrorCode,
    InternalError,
    NotFoundError,
    ValidationError,
    WindowClosedError,
)
from ..events.model import EventEligibilityContext, GeoPoint
from ..events.repository import EventDirectory
from ..statistics.service import StatisticsService
from ..users.repository import UserDirectory
from . import metrics as metrics_calc
from .factory import CheckInStrategyFactory
from .model import AttendanceRecord
from .repository import AttendanceQuery, AttendanceRepository
from .status import recompute_status
from .strategies.base import CheckInRequest

logger = logging.getLogger(__name__)

_CHECK_IN_MESSAGES = {
    AttendanceStatus.PRESENT: "Attendance recorded successfully!",
    AttendanceStatus.LATE: "Attendance recorded - late arrival noted",
    AttendanceStatus.EXCUSED: "Excused absence recorded",
}


@dataclass(frozen=True)
class CheckInResponse:
    success: bool
    attendance: dict
    message: str
    requires_validation: bool


@dataclass(frozen=True)
class AttendanceListOptions:
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    event_id: Optional[str] = None
    user_id: Optional[str] = None
    status: Optional[AttendanceStatus] = None
    method: Optional[AttendanceMethod] = None
    validation_state: Optional[ValidationState] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = "created_at"
    descending: bool = True


@dataclass(frozen=True)
class AttendancePage:
    items: list[AttendanceRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass
class SynchronizationResult:
    synchronized: int = 0
    corrected: int = 0
    errors: list[dict] = field(default_factory=list)


class AttendanceService:
    """Check-in orchestrator.

    Runs the check-in pipeline as a fail-fast sequence. Nothing is persisted
    before every precondition passed; a failure is written to the audit log
    on a best-effort basis and then re-raised unchanged.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        events: EventDirectory,
        users: UserDirectory,
        *,
        strategy_factory: CheckInStrategyFactory,
        statistics: StatisticsService,
        audit: AuditLogger,
    ):
        self._attendance = attendance
        self._events = events
        self._users = users
        self._factory = strategy_factory
        self._statistics = statistics
        self._audit = audit

    # ---------------------------------------------------------------- lookups

    def _get_event(self, event_id: str) -> EventEligibilityContext:
        event = self._events.get_event_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found", code=ErrorCode.EVENT_NOT_FOUND)
        return event

    def _get_record(self, attendance_id: str) -> AttendanceRecord:
        record = self._attendance.get_by_id(attendance_id)
        if record is None:
            raise NotFoundError("Attendance not found", code=ErrorCode.ATTENDANCE_NOT_FOUND)
        return record

    # --------------------------------------------------------------- check-in

    def check_in(self, request: CheckInRequest, *, now: Optional[datetime] = None) -> CheckInResponse:
        now = now or now_local()
        try:
            record = self._process_check_in(request, now=now)
        except DomainError as e:
            logger.warning("Check-in rejected user=%s event=%s: %s", request.user_id, request.event_id, e.code.value)
            self._log_failed_check_in(request, e)
            raise
        except Exception as e:
            logger.exception("Unexpected check-in failure user=%s event=%s", request.user_id, request.event_id)
            self._log_failed_check_in(request, e)
            raise InternalError("Check-in failed") from e

        logger.info("Check-in recorded user=%s event=%s status=%s", record.user_id, record.event_id, record.status.value)

        return CheckInResponse(
            success=True,
            attendance=record.to_document(),
            message=_CHECK_IN_MESSAGES.get(record.status, "Attendance recorded."),
            requires_validation=record.method == AttendanceMethod.MANUAL or record.status == AttendanceStatus.EXCUSED,
        )

    def _log_failed_check_in(self, request: CheckInRequest, error: Exception) -> None:
        self._audit.log_best_effort(
            AuditAction.CHECK_IN_FAILED,
            target_id=None,
            performed_by=request.marked_by or request.user_id or SYSTEM_ACTOR,
            details={
                "event_id": request.event_id,
                "user_id": request.user_id,
                "method": getattr(request.method, "value", request.method),
                "error": str(error),
                "code": getattr(getattr(error, "code", None), "value", None),
            },
        )

    def _process_check_in(self, request: CheckInRequest, *, now: datetime) -> AttendanceRecord:
        require_non_empty(request.user_id, "userId")
        require_non_empty(request.event_id, "eventId")
        method = require_enum(request.method, AttendanceMethod, "method")

        if self._users.get_user_by_id(request.user_id) is None:
            raise NotFoundError("User not found", code=ErrorCode.USER_NOT_FOUND)
        event = self._get_event(request.event_id)

        if request.user_id not in event.participants:
            raise ValidationError("User is not registered for this event", code=ErrorCode.NOT_REGISTERED)
        if event.status == EventStatus.CANCELLED:
            raise ConflictError("Event is cancelled", code=ErrorCode.EVENT_CANCELLED)
        if event.status == EventStatus.COMPLETED:
            raise ConflictError("Event has already ended", code=ErrorCode.EVENT_ALREADY_ENDED)

        window = event.attendance_settings.check_in_window
        opens = event.start_date_time - timedelta(minutes=window.before_minutes)
        closes = event.start_date_time + timedelta(minutes=window.after_minutes)
        if not opens <= now <= closes:
            raise WindowClosedError(f"Check-in is open from {opens:%H:%M} to {closes:%H:%M}")

        existing = self._attendance.get_for_user_and_event(request.user_id, event.event_id)
        if existing is not None and not existing.can_be_updated():
            raise ConflictError("Attendance already marked", code=ErrorCode.ALREADY_MARKED_ATTENDANCE)

        settings = event.attendance_settings
        if settings.restricts_methods() and method not in settings.required_methods():
            raise ValidationError(f"Method {method.value} is not accepted for this event")

        draft = self._factory.for_method(method).process(request, event, now=now)

        actor = request.marked_by or request.user_id
        if existing is not None:
            record = existing
            record.merge_check_in(draft, performed_by=actor, at=now)
        else:
            record = draft
            record.mark_created(performed_by=actor, at=now)

        record.calculate_metrics(event.start_date_time, event.end_date_time, at=now)
        record.validate()
        self._attendance.save(record)
        self._statistics.update_event_stats(event.event_id)
        self._audit.log(
            AuditAction.CHECK_IN,
            target_id=record.id,
            performed_by=actor,
            details={"event_id": record.event_id, "method": record.method.value, "status": record.status.value},
        )
        return record

    def mark_attendance_manually(
        self,
        *,
        user_id: str,
        event_id: str,
        marked_by: str,
        status: AttendanceStatus = AttendanceStatus.PRESENT,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CheckInResponse:
        request = CheckInRequest(
            event_id=event_id,
            user_id=user_id,
            method=AttendanceMethod.MANUAL,
            marked_by=marked_by,
            status=status,
            notes=notes,
        )
        return self.check_in(request, now=now)

    # -------------------------------------------------------------- check-out

    def check_out(
        self,
        attendance_id: str,
        performed_by: str,
        *,
        now: Optional[datetime] = None,
        location: Optional[GeoPoint] = None,
    ) -> AttendanceRecord:
        now = now or now_local()
        record = self._get_record(attendance_id)
        event = self._get_event(record.event_id)

        record.check_out(performed_by=performed_by, at=now, location=location, event_end=event.end_date_time)
        record.validate()
        self._attendance.save(record)
        self._statistics.update_event_stats(record.event_id)

        self._audit.log(
            AuditAction.CHECK_OUT,
            target_id=record.id,
            performed_by=performed_by,
            details={"event_id": record.event_id, "duration": record.metrics.duration},
        )
        logger.info("Check-out recorded attendance=%s duration=%s", record.id, record.metrics.duration)
        return record

    def add_feedback(
        self,
        attendance_id: str,
        user_id: str,
        rating: int,
        comment: Optional[str] = None,
        would_recommend: Optional[bool] = None,
        *,
        now: Optional[datetime] = None,
    ) -> AttendanceRecord:
        record = self._get_record(attendance_id)
        if record.user_id != user_id:
            raise ValidationError("Feedback can only be given on your own attendance")

        record.add_feedback(rating, comment, would_recommend, performed_by=user_id, at=now)
        self._attendance.save(record)
        self._audit.log(
            AuditAction.FEEDBACK_ADDED,
            target_id=record.id,
            performed_by=user_id,
            details={"rating": rating},
        )
        return record

    # ---------------------------------------------------------------- queries

    def get_attendance_by_id(self, attendance_id: str) -> AttendanceRecord:
        return self._get_record(attendance_id)

    def get_attendance_by_user_and_event(self, user_id: str, event_id: str) -> Optional[AttendanceRecord]:
        return self._attendance.get_for_user_and_event(user_id, event_id)

    def get_attendances(self, options: AttendanceListOptions) -> AttendancePage:
        if options.page is None or options.page < 1:
            raise ValidationError("page must be at least 1")
        require_range(options.limit, "limit", 1, MAX_PAGE_LIMIT)

        base = AttendanceQuery(
            event_id=options.event_id,
            user_id=options.user_id,
            status=options.status,
            method=options.method,
            validation_state=options.validation_state,
            created_from=options.date_from,
            created_to=options.date_to,
            sort_by=options.sort_by,
            descending=options.descending,
        )
        total = self._attendance.count(base)
        page_query = replace(base, offset=(options.page - 1) * options.limit, limit=options.limit)
        items = list(self._attendance.query(page_query))
        return AttendancePage(items=items, total=total, page=options.page, limit=options.limit)

    # -------------------------------------------------------- synchronization

    def synchronize_event_attendances(self, event_id: str, *, now: Optional[datetime] = None) -> SynchronizationResult:
        """Mark missing participants absent once the event is over and re-run the recompute path on the rest."""
        now = now or now_local()
        event = self._get_event(event_id)
        existing = {r.user_id: r for r in self._attendance.list_for_event(event_id)}
        ended = event.status == EventStatus.COMPLETED and event.end_date_time < now

        result = SynchronizationResult()
        for participant_id in sorted(event.participants):
            try:
                record = existing.get(participant_id)
                if record is None:
                    if ended:
                        self._create_absent(event, participant_id, now=now)
                        result.synchronized += 1
                elif self._needs_correction(record, event):
                    record.calculate_metrics(event.start_date_time, event.end_date_time, at=now)
                    self._attendance.save(record)
                    result.corrected += 1
            except DomainError as e:
                result.errors.append({"user_id": participant_id, "error": str(e)})

        if result.synchronized or result.corrected:
            self._statistics.update_event_stats(event_id)
        logger.info(
            "Event %s synchronized: %d absent, %d corrected, %d errors",
            event_id,
            result.synchronized,
            result.corrected,
            len(result.errors),
        )
        return result

    @staticmethod
    def _needs_correction(record: AttendanceRecord, event: EventEligibilityContext) -> bool:
        if record.check_in_time is None:
            return False
        expected = metrics_calc.calculate_metrics(
            method=record.method,
            check_in_time=record.check_in_time,
            check_out_time=record.check_out_time,
            event_start=event.start_date_time,
            event_end=event.end_date_time,
        )
        status = recompute_status(record.status, expected.late_minutes, expected.early_leave_minutes)
        return status != record.status or expected != record.metrics

    def _create_absent(self, event: EventEligibilityContext, user_id: str, *, now: datetime) -> AttendanceRecord:
        record = AttendanceRecord(
            event_id=event.event_id,
            user_id=user_id,
            status=AttendanceStatus.ABSENT,
            method=AttendanceMethod.MANUAL,
            marked_by=SYSTEM_ACTOR,
            notes="Marked absent during synchronization",
        )
        record.mark_created(performed_by=SYSTEM_ACTOR, at=now)
        self._attendance.save(record)
        return record
