from __future__ import annotations

import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .verifiers import QRCodeVerifier, QRValidationResult

_ALGORITHM = "HS256"


class SignedQRCodeVerifier(QRCodeVerifier):
    """QR tokens as short-lived signed JWTs.

    Each token carries a nonce (``jti``); a nonce is accepted once per user,
    a second scan is reported as reused. Nonces are kept in memory, so the
    single-use guarantee holds per process.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = 3600):
        if not secret:
            raise ValueError("QR token secret must not be empty")
        self._secret = secret
        self._ttl_seconds = int(ttl_seconds)
        self._used: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def issue_token(self, event_id: str, *, ttl_seconds: Optional[int] = None, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        payload = {
            "event_id": event_id,
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds or self._ttl_seconds),
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def validate_qr_code(self, token: str, user_id: str) -> QRValidationResult:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except jwt.ExpiredSignatureError:
            return QRValidationResult(is_valid=False, reason="QR code has expired")
        except jwt.InvalidTokenError:
            return QRValidationResult(is_valid=False, reason="Invalid QR code")

        nonce = payload.get("jti")
        event_id = payload.get("event_id")
        if not nonce or not event_id:
            return QRValidationResult(is_valid=False, reason="Invalid QR code")

        with self._lock:
            key = (str(user_id), str(nonce))
            if key in self._used:
                return QRValidationResult(is_valid=False, reason="QR code already used", event_id=event_id)
            self._used.add(key)

        return QRValidationResult(is_valid=True, event_id=event_id)
