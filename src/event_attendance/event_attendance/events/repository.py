from __future__ import annotations

from typing import Optional, Protocol

from .model import EventEligibilityContext


class EventDirectory(Protocol):
    """Interface of the external event service.

    Note: the aggregate write-back has no version check, concurrent writers
    overwrite each other (last writer wins).
    """

    def get_event_by_id(self, event_id: str) -> Optional[EventEligibilityContext]:
        raise NotImplementedError

    def update_attendance_stats(self, event_id: str, stats: dict) -> None:
        raise NotImplementedError
