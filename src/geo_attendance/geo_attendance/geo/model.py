from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Entity:
    """Authorized physical location: a point plus a geofence radius in meters."""

    entity_id: str
    name: str
    latitude: float
    longitude: float
    radius_meters: int


@dataclass(frozen=True)
class EntityDistance:
    entity_id: str
    entity_name: str
    distance_meters: float
    is_within_radius: bool
    latitude: float
    longitude: float
    radius_meters: int


@dataclass(frozen=True)
class LocationValidationResult:
    is_valid: bool
    entity: Optional[EntityDistance] = None
    error_message: Optional[str] = None
    candidates: list[EntityDistance] = field(default_factory=list)
