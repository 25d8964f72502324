from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import format_datetime, now_local, parse_datetime
from ..core.constants import SYSTEM_ACTOR
from ..core.enums import AttendanceMethod, AttendanceStatus, AuditAction, EngagementLevel
from ..core.exceptions import ConflictError, ErrorCode, ValidationError
from ..events.model import GeoPoint
from . import metrics as metrics_calc
from .metrics import AttendanceMetrics
from .status import CHECKOUT_ALLOWED_STATUSES, recompute_status


@dataclass
class AttendanceValidation:
    is_validated: bool = False
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    validation_notes: Optional[str] = None
    validation_score: Optional[float] = None


@dataclass
class AttendanceFeedback:
    rating: int
    comment: Optional[str] = None
    would_recommend: Optional[bool] = None
    submitted_at: Optional[datetime] = None


@dataclass(frozen=True)
class QRCodeValidation:
    qr_code_data: str
    validated_at: datetime
    is_valid: bool = True


@dataclass(frozen=True)
class AuditEntry:
    action: AuditAction
    performed_by: str
    performed_at: datetime
    old_value: Any = None
    new_value: Any = None


@dataclass
class AttendanceRecord:
    """Domain entity: attendance of one user at one event.

    Every mutating method appends exactly one ``AuditEntry``; entries are
    never edited or removed.
    """

    event_id: str
    user_id: str
    status: AttendanceStatus
    method: AttendanceMethod
    id: Optional[str] = None
    marked_by: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    check_in_location: Optional[GeoPoint] = None
    check_out_location: Optional[GeoPoint] = None
    location_accuracy: Optional[float] = None
    notes: Optional[str] = None
    device_info: dict = field(default_factory=dict)
    qr_code_validation: Optional[QRCodeValidation] = None
    validation: AttendanceValidation = field(default_factory=AttendanceValidation)
    metrics: AttendanceMetrics = field(default_factory=AttendanceMetrics)
    feedback: Optional[AttendanceFeedback] = None
    audit_log: list[AuditEntry] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # ------------------------------------------------------------------ audit

    def _audit(
        self,
        action: AuditAction,
        performed_by: str,
        at: Optional[datetime],
        *,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        at = at or now_local()
        self.audit_log.append(
            AuditEntry(action=action, performed_by=performed_by, performed_at=at, old_value=old_value, new_value=new_value)
        )
        self.updated_at = at

    # -------------------------------------------------------------- lifecycle

    def mark_created(self, *, performed_by: str, at: Optional[datetime] = None) -> None:
        at = at or now_local()
        if self.created_at is None:
            self.created_at = at
        if self.marked_by is None:
            self.marked_by = performed_by
        self._audit(AuditAction.CREATED, performed_by, at, new_value=self.status.value)

    @property
    def is_validated(self) -> bool:
        return self.validation.validated_by is not None

    def can_be_updated(self) -> bool:
        """False once a human (or trusted method) has validated the record or an organizer marked it manually."""
        if self.validation.validated_by:
            return False
        if self.method == AttendanceMethod.MANUAL and self.marked_by:
            return False
        return True

    def merge_check_in(self, draft: "AttendanceRecord", *, performed_by: str, at: Optional[datetime] = None) -> None:
        """Apply a fresh check-in draft onto this (still updatable) record."""
        if not self.can_be_updated():
            raise ConflictError("Attendance already marked", code=ErrorCode.ALREADY_MARKED_ATTENDANCE)

        old_status = self.status
        self.status = draft.status
        self.method = draft.method
        self.check_in_time = draft.check_in_time or self.check_in_time
        self.check_in_location = draft.check_in_location or self.check_in_location
        self.location_accuracy = draft.location_accuracy or self.location_accuracy
        self.notes = draft.notes or self.notes
        self.device_info = {**self.device_info, **draft.device_info}
        self.qr_code_validation = draft.qr_code_validation or self.qr_code_validation
        self.validation = replace(draft.validation)
        if draft.marked_by:
            self.marked_by = draft.marked_by
        self._audit(AuditAction.CHECKED_IN, performed_by, at, old_value=old_status.value, new_value=self.status.value)

    def validate(self) -> None:
        """Check structural invariants; raise ``ValidationError`` naming the first violated rule."""
        if not self.event_id:
            raise ValidationError("eventId is required")
        if not self.user_id:
            raise ValidationError("userId is required")
        if not isinstance(self.status, AttendanceStatus):
            raise ValidationError(f"status must be one of {[s.value for s in AttendanceStatus]}")
        if not isinstance(self.method, AttendanceMethod):
            raise ValidationError(f"method must be one of {[m.value for m in AttendanceMethod]}")
        if self.check_out_time is not None:
            if self.check_in_time is None:
                raise ValidationError("checkOutTime requires checkInTime")
            if self.check_out_time <= self.check_in_time:
                raise ValidationError("checkOutTime must be after checkInTime")
        m = self.metrics
        if m.duration is not None and m.duration < 0:
            raise ValidationError("duration must be non-negative")
        if m.late_minutes < 0:
            raise ValidationError("lateMinutes must be non-negative")
        if m.early_leave_minutes < 0:
            raise ValidationError("earlyLeaveMinutes must be non-negative")
        if self.validation.is_validated and not self.validation.validated_by:
            raise ValidationError("validatedBy is required for a validated attendance")
        if self.feedback is not None and not 1 <= self.feedback.rating <= 5:
            raise ValidationError("rating must be between 1 and 5")

    def check_out(
        self,
        *,
        performed_by: str,
        at: Optional[datetime] = None,
        location: Optional[GeoPoint] = None,
        event_end: Optional[datetime] = None,
    ) -> None:
        at = at or now_local()
        if self.status not in CHECKOUT_ALLOWED_STATUSES:
            raise ValidationError(f"Cannot check out with status {self.status.value}")
        if self.check_out_time is not None:
            raise ConflictError("Already checked out", code=ErrorCode.ALREADY_CHECKED_OUT)
        if self.check_in_time is None or at <= self.check_in_time:
            raise ValidationError("checkOutTime must be after checkInTime")

        old_status = self.status
        self.check_out_time = at
        self.check_out_location = location
        self.metrics.duration = metrics_calc.duration_minutes(self.check_in_time, at)
        if event_end is not None:
            self.metrics.early_leave_minutes = metrics_calc.early_leave_minutes(at, event_end)
            self.status = recompute_status(self.status, self.metrics.late_minutes, self.metrics.early_leave_minutes)
        self._audit(
            AuditAction.CHECKED_OUT,
            performed_by,
            at,
            old_value=old_status.value,
            new_value={"status": self.status.value, "duration": self.metrics.duration},
        )

    def validate_attendance(
        self,
        validator_id: str,
        approved: bool,
        notes: Optional[str] = None,
        score: Optional[float] = None,
        *,
        at: Optional[datetime] = None,
    ) -> None:
        if self.validation.validated_by:
            raise ConflictError("Attendance already validated", code=ErrorCode.ALREADY_VALIDATED)
        if not validator_id:
            raise ValidationError("validatedBy is required")

        at = at or now_local()
        self.validation = AttendanceValidation(
            is_validated=bool(approved),
            validated_by=validator_id,
            validated_at=at,
            validation_notes=notes,
            validation_score=score,
        )
        self._audit(
            AuditAction.VALIDATED if approved else AuditAction.REJECTED,
            validator_id,
            at,
            new_value={"approved": bool(approved), "notes": notes},
        )

    def mark_as_late(self, minutes: int, *, performed_by: str, at: Optional[datetime] = None) -> None:
        if minutes is None or minutes < 0:
            raise ValidationError("lateMinutes must be non-negative")
        old_status = self.status
        self.status = AttendanceStatus.LATE
        self.metrics.late_minutes = int(minutes)
        self._audit(AuditAction.MARKED_LATE, performed_by, at, old_value=old_status.value, new_value=int(minutes))

    def mark_as_left_early(self, minutes: int, *, performed_by: str, at: Optional[datetime] = None) -> None:
        if minutes is None or minutes < 0:
            raise ValidationError("earlyLeaveMinutes must be non-negative")
        old_status = self.status
        self.status = AttendanceStatus.LEFT_EARLY
        self.metrics.early_leave_minutes = int(minutes)
        self._audit(AuditAction.MARKED_LEFT_EARLY, performed_by, at, old_value=old_status.value, new_value=int(minutes))

    def calculate_metrics(
        self,
        event_start: datetime,
        event_end: datetime,
        *,
        performed_by: str = SYSTEM_ACTOR,
        at: Optional[datetime] = None,
    ) -> AttendanceMetrics:
        """Recompute derived metrics and escalate the status through the recompute path."""
        old_status = self.status
        self.metrics = metrics_calc.calculate_metrics(
            method=self.method,
            check_in_time=self.check_in_time,
            check_out_time=self.check_out_time,
            event_start=event_start,
            event_end=event_end,
        )
        self.status = recompute_status(self.status, self.metrics.late_minutes, self.metrics.early_leave_minutes)
        self._audit(
            AuditAction.METRICS_CALCULATED,
            performed_by,
            at,
            old_value=old_status.value,
            new_value=self.status.value,
        )
        return self.metrics

    def add_feedback(
        self,
        rating: int,
        comment: Optional[str] = None,
        would_recommend: Optional[bool] = None,
        *,
        performed_by: str,
        at: Optional[datetime] = None,
    ) -> None:
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError("rating must be an integer between 1 and 5")
        at = at or now_local()
        self.feedback = AttendanceFeedback(rating=rating, comment=comment, would_recommend=would_recommend, submitted_at=at)
        self._audit(AuditAction.FEEDBACK_ADDED, performed_by, at, new_value=rating)

    # ---------------------------------------------------------- serialization

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "method": self.method.value,
            "marked_by": self.marked_by,
            "check_in_time": format_datetime(self.check_in_time),
            "check_out_time": format_datetime(self.check_out_time),
            "check_in_location": _point_doc(self.check_in_location),
            "check_out_location": _point_doc(self.check_out_location),
            "location_accuracy": self.location_accuracy,
            "notes": self.notes,
            "device_info": dict(self.device_info),
            "qr_code_validation": (
                {
                    "qr_code_data": self.qr_code_validation.qr_code_data,
                    "validated_at": format_datetime(self.qr_code_validation.validated_at),
                    "is_valid": self.qr_code_validation.is_valid,
                }
                if self.qr_code_validation
                else None
            ),
            "validation": {
                "is_validated": self.validation.is_validated,
                "validated_by": self.validation.validated_by,
                "validated_at": format_datetime(self.validation.validated_at),
                "validation_notes": self.validation.validation_notes,
                "validation_score": self.validation.validation_score,
            },
            "metrics": {
                "late_minutes": self.metrics.late_minutes,
                "early_leave_minutes": self.metrics.early_leave_minutes,
                "duration": self.metrics.duration,
                "participation_score": self.metrics.participation_score,
                "engagement_level": self.metrics.engagement_level.value if self.metrics.engagement_level else None,
            },
            "feedback": (
                {
                    "rating": self.feedback.rating,
                    "comment": self.feedback.comment,
                    "would_recommend": self.feedback.would_recommend,
                    "submitted_at": format_datetime(self.feedback.submitted_at),
                }
                if self.feedback
                else None
            ),
            "audit_log": [
                {
                    "action": e.action.value,
                    "performed_by": e.performed_by,
                    "performed_at": format_datetime(e.performed_at),
                    "old_value": e.old_value,
                    "new_value": e.new_value,
                }
                for e in self.audit_log
            ],
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict) -> "AttendanceRecord":
        validation = doc.get("validation") or {}
        metrics = doc.get("metrics") or {}
        feedback = doc.get("feedback")
        qr = doc.get("qr_code_validation")
        return cls(
            id=doc.get("id"),
            event_id=doc["event_id"],
            user_id=doc["user_id"],
            status=AttendanceStatus(doc["status"]),
            method=AttendanceMethod(doc["method"]),
            marked_by=doc.get("marked_by"),
            check_in_time=parse_datetime(doc.get("check_in_time")),
            check_out_time=parse_datetime(doc.get("check_out_time")),
            check_in_location=_point_from_doc(doc.get("check_in_location")),
            check_out_location=_point_from_doc(doc.get("check_out_location")),
            location_accuracy=doc.get("location_accuracy"),
            notes=doc.get("notes"),
            device_info=dict(doc.get("device_info") or {}),
            qr_code_validation=(
                QRCodeValidation(
                    qr_code_data=qr["qr_code_data"],
                    validated_at=parse_datetime(qr["validated_at"]),
                    is_valid=bool(qr.get("is_valid", True)),
                )
                if qr
                else None
            ),
            validation=AttendanceValidation(
                is_validated=bool(validation.get("is_validated", False)),
                validated_by=validation.get("validated_by"),
                validated_at=parse_datetime(validation.get("validated_at")),
                validation_notes=validation.get("validation_notes"),
                validation_score=validation.get("validation_score"),
            ),
            metrics=AttendanceMetrics(
                late_minutes=int(metrics.get("late_minutes") or 0),
                early_leave_minutes=int(metrics.get("early_leave_minutes") or 0),
                duration=metrics.get("duration"),
                participation_score=metrics.get("participation_score"),
                engagement_level=EngagementLevel(metrics["engagement_level"]) if metrics.get("engagement_level") else None,
            ),
            feedback=(
                AttendanceFeedback(
                    rating=int(feedback["rating"]),
                    comment=feedback.get("comment"),
                    would_recommend=feedback.get("would_recommend"),
                    submitted_at=parse_datetime(feedback.get("submitted_at")),
                )
                if feedback
                else None
            ),
            audit_log=[
                AuditEntry(
                    action=AuditAction(e["action"]),
                    performed_by=e["performed_by"],
                    performed_at=parse_datetime(e["performed_at"]),
                    old_value=e.get("old_value"),
                    new_value=e.get("new_value"),
                )
                for e in doc.get("audit_log") or []
            ],
            created_at=parse_datetime(doc.get("created_at")),
            updated_at=parse_datetime(doc.get("updated_at")),
        )


def _point_doc(point: Optional[GeoPoint]) -> Optional[dict]:
    if point is None:
        return None
    return {"latitude": point.latitude, "longitude": point.longitude}


def _point_from_doc(doc: Optional[dict]) -> Optional[GeoPoint]:
    if not doc:
        return None
    return GeoPoint(latitude=float(doc["latitude"]), longitude=float(doc["longitude"]))
