from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class QRValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    event_id: Optional[str] = None


class QRCodeVerifier(Protocol):
    def validate_qr_code(self, token: str, user_id: str) -> QRValidationResult:
        raise NotImplementedError


class BiometricVerifier(Protocol):
    def verify(self, assertion: Optional[str]) -> bool:
        raise NotImplementedError


class StubBiometricVerifier:
    """Placeholder until a biometric provider is integrated.

    Accepts any non-empty assertion.
    """

    def verify(self, assertion: Optional[str]) -> bool:
        return bool(assertion)
