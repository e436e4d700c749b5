from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.constants import MAX_ENTITY_RADIUS_METERS, MIN_ENTITY_RADIUS_METERS
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, to_float
from .model import Entity
from .repository import EntityDirectory

logger = logging.getLogger(__name__)


def _to_entity(r: Dict[str, Any]) -> Entity:
    return Entity(
        entity_id=str(r["entity_id"]),
        name=r["name"],
        latitude=to_float(r["latitude"]),
        longitude=to_float(r["longitude"]),
        radius_meters=int(r["radius_meters"]),
    )


def _usable(rows: Iterable[Dict[str, Any]]) -> List[Entity]:
    """Map rows, skipping entities whose radius is outside the allowed range."""
    entities = []
    for r in rows:
        entity = _to_entity(r)
        if not MIN_ENTITY_RADIUS_METERS <= entity.radius_meters <= MAX_ENTITY_RADIUS_METERS:
            logger.warning(
                "Skipping entity %s: radius %sm outside %s-%sm",
                entity.entity_id,
                entity.radius_meters,
                MIN_ENTITY_RADIUS_METERS,
                MAX_ENTITY_RADIUS_METERS,
            )
            continue
        entities.append(entity)
    return entities


class MySQLEntityDirectory(EntityDirectory):
    """Entity access read from the department/entity tables.

    User-specific assignments, when the user has any, replace the
    department's assignments entirely.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    async def list_accessible_entities(self, user_id: str) -> Sequence[Entity]:
        async with db_cursor(self._conn_factory) as (_, cur):
            await cur.execute(
                """
                SELECT e.entity_id, e.name, e.latitude, e.longitude, e.radius_meters
                FROM entities e
                JOIN user_entity_assignments uea ON uea.entity_id = e.entity_id
                WHERE uea.user_id=%s
                ORDER BY uea.is_primary DESC, e.name ASC
                """,
                (user_id,),
            )
            rows = await fetchall(cur)
            if rows:
                return _usable(rows)

            await cur.execute(
                """
                SELECT DISTINCT e.entity_id, e.name, e.latitude, e.longitude, e.radius_meters,
                       dea.is_primary
                FROM entities e
                JOIN department_entity_assignments dea ON dea.entity_id = e.entity_id
                JOIN users u ON u.department_id = dea.department_id
                WHERE u.user_id=%s
                ORDER BY dea.is_primary DESC, e.name ASC
                """,
                (user_id,),
            )
            return _usable(await fetchall(cur))

    async def has_entity_access(self, user_id: str, entity_id: str) -> bool:
        entities = await self.list_accessible_entities(user_id)
        return any(e.entity_id == str(entity_id) for e in entities)

    async def get_by_id(self, entity_id: str) -> Optional[Entity]:
        async with db_cursor(self._conn_factory) as (_, cur):
            await cur.execute(
                "SELECT entity_id, name, latitude, longitude, radius_meters FROM entities WHERE entity_id=%s",
                (entity_id,),
            )
            r = await fetchone(cur)
            usable = _usable([r] if r else [])
            return usable[0] if usable else None
