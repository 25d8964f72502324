from __future__ import annotations

from typing import Protocol

from ..core.enums import Capability


class Authorizer(Protocol):
    def has_permission(self, user_id: str, capability: Capability) -> bool:
        raise NotImplementedError
