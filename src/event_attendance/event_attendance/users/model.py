from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UserProfile:
    """Projection of a user as seen by the attendance core."""

    user_id: str
    display_name: str
    department: Optional[str] = None
