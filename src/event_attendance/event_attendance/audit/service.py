from __future__ import annotations

import logging
from typing import Optional

from ..common.datetime_utils import now_local
from ..core.enums import AuditAction
from .repository import AuditLogEntry, AuditLogRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes entries to the global audit log."""

    def __init__(self, repository: AuditLogRepository):
        self._repository = repository

    def log(
        self,
        action: AuditAction,
        *,
        target_id: Optional[str],
        performed_by: str,
        details: Optional[dict] = None,
    ) -> None:
        self._repository.append(
            AuditLogEntry(
                action=action.value,
                target_id=target_id,
                performed_by=performed_by,
                performed_at=now_local(),
                details=dict(details or {}),
            )
        )

    def log_best_effort(
        self,
        action: AuditAction,
        *,
        target_id: Optional[str],
        performed_by: str,
        details: Optional[dict] = None,
    ) -> None:
        """Like ``log`` but never raises; used outside the main transaction."""
        try:
            self.log(action, target_id=target_id, performed_by=performed_by, details=details)
        except Exception:
            logger.warning("Could not write audit entry %s for %s", action.value, performed_by, exc_info=True)
