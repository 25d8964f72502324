from __future__ import annotations

from dataclasses import dataclass, field

from ..auth.repository import Authorizer
from ..core.constants import DEFAULT_GEOFENCE_RADIUS_METERS, LOCATION_ACCURACY_THRESHOLD_METERS
from ..core.enums import AttendanceMethod
from ..core.exceptions import ValidationError
from ..integrations.verifiers import BiometricVerifier, QRCodeVerifier
from .strategies.base import CheckInStrategy
from .strategies.biometric_strategy import BiometricStrategy
from .strategies.geolocation_strategy import GeolocationStrategy
from .strategies.manual_strategy import ManualStrategy
from .strategies.qr_strategy import QRCodeStrategy


@dataclass
class CheckInStrategyFactory:
    """Factory Pattern: choose the check-in strategy matching the requested method."""

    strategies: dict[AttendanceMethod, CheckInStrategy] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        qr_verifier: QRCodeVerifier,
        biometric_verifier: BiometricVerifier,
        authorizer: Authorizer,
        accuracy_threshold_meters: float = LOCATION_ACCURACY_THRESHOLD_METERS,
        default_radius_meters: float = DEFAULT_GEOFENCE_RADIUS_METERS,
    ) -> "CheckInStrategyFactory":
        strategies: list[CheckInStrategy] = [
            QRCodeStrategy(qr_verifier),
            GeolocationStrategy(
                accuracy_threshold_meters=accuracy_threshold_meters,
                default_radius_meters=default_radius_meters,
            ),
            ManualStrategy(authorizer),
            BiometricStrategy(biometric_verifier),
        ]
        return cls({s.method: s for s in strategies})

    def for_method(self, method: AttendanceMethod) -> CheckInStrategy:
        strategy = self.strategies.get(method)
        if strategy is None:
            raise ValidationError(f"Unsupported check-in method: {getattr(method, 'value', method)}")
        return strategy
