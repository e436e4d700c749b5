from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Entity


class EntityDirectory(Protocol):
    """Read-only access to entities and the user's entity assignments.

    Note: department/entity administration lives in another service; this is
    the slice the attendance core consumes.
    """

    async def list_accessible_entities(self, user_id: str) -> Sequence[Entity]:
        raise NotImplementedError

    async def has_entity_access(self, user_id: str, entity_id: str) -> bool:
        raise NotImplementedError

    async def get_by_id(self, entity_id: str) -> Optional[Entity]:
        raise NotImplementedError
