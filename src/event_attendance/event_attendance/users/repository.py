from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import UserProfile


class UserDirectory(Protocol):
    """Interface of the external user service."""

    def get_user_by_id(self, user_id: str) -> Optional[UserProfile]:
        raise NotImplementedError

    def list_by_department(self, department: str) -> Sequence[UserProfile]:
        raise NotImplementedError
