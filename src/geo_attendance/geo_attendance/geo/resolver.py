from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..core.constants import NEARBY_ENTITY_SUGGESTIONS
from .distance import distance, validate_coordinates
from .model import Entity, EntityDistance, LocationValidationResult
from .repository import EntityDirectory

logger = logging.getLogger(__name__)


class GeospatialResolver:
    """Resolves which authorized entities a user may check into, and whether a
    coordinate lies inside one's geofence.
    """

    def __init__(self, entities: EntityDirectory, *, suggestions: int = NEARBY_ENTITY_SUGGESTIONS):
        self._entities = entities
        self._suggestions = int(suggestions)

    @staticmethod
    def is_within_radius(
        entity_latitude: float,
        entity_longitude: float,
        latitude: float,
        longitude: float,
        radius_meters: float,
    ) -> bool:
        """Boundary inclusive: a distance equal to the radius is inside."""
        return distance(entity_latitude, entity_longitude, latitude, longitude) <= radius_meters

    @staticmethod
    def measure(entity: Entity, latitude: float, longitude: float) -> EntityDistance:
        d = distance(entity.latitude, entity.longitude, latitude, longitude)
        return EntityDistance(
            entity_id=entity.entity_id,
            entity_name=entity.name,
            distance_meters=d,
            is_within_radius=d <= entity.radius_meters,
            latitude=entity.latitude,
            longitude=entity.longitude,
            radius_meters=entity.radius_meters,
        )

    async def rank_entities(self, user_id: str, latitude: float, longitude: float) -> list[EntityDistance]:
        """Accessible entities sorted nearest first."""
        validate_coordinates(latitude, longitude)
        entities: Sequence[Entity] = await self._entities.list_accessible_entities(user_id)
        ranked = [self.measure(e, latitude, longitude) for e in entities]
        ranked.sort(key=lambda x: x.distance_meters)
        return ranked

    async def find_nearest_entity(self, user_id: str, latitude: float, longitude: float) -> Optional[EntityDistance]:
        ranked = await self.rank_entities(user_id, latitude, longitude)
        return ranked[0] if ranked else None

    async def validate_location_access(self, user_id: str, latitude: float, longitude: float) -> LocationValidationResult:
        ranked = await self.rank_entities(user_id, latitude, longitude)
        if not ranked:
            return LocationValidationResult(
                is_valid=False,
                error_message="No authorized entities found for user",
            )

        # Nearest entity whose fence contains the point; geofences can overlap.
        inside = [e for e in ranked if e.is_within_radius]
        if inside:
            return LocationValidationResult(is_valid=True, entity=inside[0])

        nearest = ranked[0]
        logger.info(
            "User %s is %.0fm from nearest entity %s (radius %sm)",
            user_id,
            nearest.distance_meters,
            nearest.entity_id,
            nearest.radius_meters,
        )
        return LocationValidationResult(
            is_valid=False,
            entity=nearest,
            error_message=(
                f"Location is {round(nearest.distance_meters)}m from nearest authorized entity "
                f'"{nearest.entity_name}" (radius: {nearest.radius_meters}m)'
            ),
            candidates=ranked[: self._suggestions],
        )

    async def has_entity_access(self, user_id: str, entity_id: str) -> bool:
        return await self._entities.has_entity_access(user_id, entity_id)

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        return await self._entities.get_by_id(entity_id)
