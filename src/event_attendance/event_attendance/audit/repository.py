from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class AuditLogEntry:
    action: str
    target_id: Optional[str]
    performed_by: str
    performed_at: datetime
    details: dict = field(default_factory=dict)
    target_type: str = "attendance"


class AuditLogRepository(Protocol):
    """Append-only action log, separate from the per-record audit trail."""

    def append(self, entry: AuditLogEntry) -> None:
        raise NotImplementedError

    def list_for_target(self, target_id: str) -> Sequence[AuditLogEntry]:
        raise NotImplementedError
