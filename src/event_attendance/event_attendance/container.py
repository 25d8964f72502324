from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.factory import CheckInStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.service import AttendanceService
from .audit.mysql_audit_repository import MySQLAuditLogRepository
from .audit.service import AuditLogger
from .auth.repository import Authorizer
from .core.constants import BULK_BATCH_SIZE, DEFAULT_GEOFENCE_RADIUS_METERS, LOCATION_ACCURACY_THRESHOLD_METERS
from .database.connection import DBConfig, DatabaseConnection
from .events.repository import EventDirectory
from .integrations.qr_tokens import SignedQRCodeVerifier
from .integrations.verifiers import BiometricVerifier, QRCodeVerifier, StubBiometricVerifier
from .statistics.service import StatisticsService
from .users.repository import UserDirectory
from .validation.service import ValidationService


@dataclass(frozen=True)
class AttendanceSettingsConfig:
    """Plain values read from the settings module."""

    qr_token_secret: str = ""
    qr_token_ttl_seconds: int = 3600
    location_accuracy_threshold_meters: float = LOCATION_ACCURACY_THRESHOLD_METERS
    default_geofence_radius_meters: float = DEFAULT_GEOFENCE_RADIUS_METERS
    bulk_batch_size: int = BULK_BATCH_SIZE

    @classmethod
    def from_settings(cls, settings) -> "AttendanceSettingsConfig":
        return cls(
            qr_token_secret=str(getattr(settings, "QR_TOKEN_SECRET", "")),
            qr_token_ttl_seconds=int(getattr(settings, "QR_TOKEN_TTL_SECONDS", 3600)),
            location_accuracy_threshold_meters=float(
                getattr(settings, "LOCATION_ACCURACY_THRESHOLD_METERS", LOCATION_ACCURACY_THRESHOLD_METERS)
            ),
            default_geofence_radius_meters=float(
                getattr(settings, "DEFAULT_GEOFENCE_RADIUS_METERS", DEFAULT_GEOFENCE_RADIUS_METERS)
            ),
            bulk_batch_size=int(getattr(settings, "BULK_BATCH_SIZE", BULK_BATCH_SIZE)),
        )


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection

    attendance_repo: MySQLAttendanceRepository
    audit_repo: MySQLAuditLogRepository

    qr_verifier: QRCodeVerifier
    audit_logger: AuditLogger
    statistics_service: StatisticsService
    attendance_service: AttendanceService
    validation_service: ValidationService


def build_container(
    *,
    db_config: dict,
    events: EventDirectory,
    users: UserDirectory,
    authorizer: Authorizer,
    qr_verifier: Optional[QRCodeVerifier] = None,
    biometric_verifier: Optional[BiometricVerifier] = None,
    settings: Optional[AttendanceSettingsConfig] = None,
) -> Container:
    settings = settings or AttendanceSettingsConfig()
    conn = DatabaseConnection(DBConfig.from_dict(db_config))

    attendance_repo = MySQLAttendanceRepository(conn)
    audit_repo = MySQLAuditLogRepository(conn)

    if qr_verifier is None:
        qr_verifier = SignedQRCodeVerifier(settings.qr_token_secret, ttl_seconds=settings.qr_token_ttl_seconds)

    audit_logger = AuditLogger(audit_repo)
    statistics_service = StatisticsService(attendance_repo, events, users)
    strategy_factory = CheckInStrategyFactory.build(
        qr_verifier=qr_verifier,
        biometric_verifier=biometric_verifier or StubBiometricVerifier(),
        authorizer=authorizer,
        accuracy_threshold_meters=settings.location_accuracy_threshold_meters,
        default_radius_meters=settings.default_geofence_radius_meters,
    )
    attendance_service = AttendanceService(
        attendance_repo,
        events,
        users,
        strategy_factory=strategy_factory,
        statistics=statistics_service,
        audit=audit_logger,
    )
    validation_service = ValidationService(
        attendance_repo,
        events,
        authorizer,
        statistics=statistics_service,
        audit=audit_logger,
        batch_size=settings.bulk_batch_size,
    )

    return Container(
        conn=conn,
        attendance_repo=attendance_repo,
        audit_repo=audit_repo,
        qr_verifier=qr_verifier,
        audit_logger=audit_logger,
        statistics_service=statistics_service,
        attendance_service=attendance_service,
        validation_service=validation_service,
    )
