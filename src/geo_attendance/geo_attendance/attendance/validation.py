from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import hours_between, round_minutes
from ..common.validators import require_enum, require_non_empty
from ..core.constants import OUTSIDE_AREA_REASON
from ..core.enums import SessionType, WorkLocation
from ..core.exceptions import (
    AccessDeniedError,
    ConflictError,
    GeospatialError,
    NotFoundError,
    ValidationError,
)
from ..fraud.engine import FraudAnalysis, FraudEngine, TravelPoint
from ..geo.distance import validate_coordinates
from ..geo.model import Entity
from ..geo.resolver import GeospatialResolver
from .model import AttendanceSession, DailyAttendance, LocationLog
from .repository import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClockInDecision:
    work_location: WorkLocation
    entity_id: Optional[str]
    is_within_radius: Optional[bool]
    remote_location: Optional[str] = None
    flag_reason: Optional[str] = None


@dataclass(frozen=True)
class ClockOutDecision:
    attendance: DailyAttendance
    total_hours: float
    fraud: FraudAnalysis


@dataclass(frozen=True)
class SessionCheckInDecision:
    attendance: DailyAttendance
    session_type: SessionType
    is_within_radius: Optional[bool]
    flag_reason: Optional[str] = None


@dataclass(frozen=True)
class SessionCheckOutDecision:
    session: AttendanceSession
    duration_minutes: int
    fraud: FraudAnalysis


@dataclass(frozen=True)
class LocationCheckInDecision:
    attendance: DailyAttendance
    entity: Entity
    distance_meters: float
    is_within_radius: bool = True


@dataclass(frozen=True)
class LocationCheckOutDecision:
    log: LocationLog
    duration_minutes: int
    fraud: FraudAnalysis


class ValidationOrchestrator:
    """Business rules for every attendance transition.

    Each method reads through the caller's unit of work, so the checks see the
    same snapshot the write will land on. Nothing here writes or commits:
    methods either raise a DomainError or return a decision for the caller.
    """

    def __init__(self, resolver: GeospatialResolver, fraud_engine: FraudEngine):
        self._resolver = resolver
        self._fraud = fraud_engine

    # ---------- daily clock ----------
    async def validate_clock_in(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        latitude: float,
        longitude: float,
        work_location: WorkLocation | str = WorkLocation.OFFICE,
        remote_location: Optional[str] = None,
    ) -> ClockInDecision:
        validate_coordinates(latitude, longitude)
        mode = require_enum(work_location, WorkLocation, "work_location")

        existing = await uow.attendance.get_for_user_and_date(user_id, work_date)
        if existing and existing.is_clocked_in:
            raise ConflictError(f"Already clocked in today at {existing.clock_in_time:%H:%M}")

        if mode is WorkLocation.REMOTE:
            place = require_non_empty(remote_location, "remote_location")
            return ClockInDecision(work_location=mode, entity_id=None, is_within_radius=None, remote_location=place)

        result = await self._resolver.validate_location_access(user_id, latitude, longitude)
        if result.is_valid:
            return ClockInDecision(work_location=mode, entity_id=result.entity.entity_id, is_within_radius=True)

        logger.info("Clock-in for user %s outside authorized area: %s", user_id, result.error_message)
        return ClockInDecision(
            work_location=mode,
            entity_id=result.entity.entity_id if result.entity else None,
            is_within_radius=False,
            flag_reason=f"Clock-in {OUTSIDE_AREA_REASON}: {result.error_message}",
        )

    async def validate_clock_out(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        latitude: float,
        longitude: float,
        at: datetime,
    ) -> ClockOutDecision:
        validate_coordinates(latitude, longitude)

        record = await uow.attendance.get_for_user_and_date(user_id, work_date)
        if record is None or not record.is_clocked_in:
            raise NotFoundError("No clock-in found for today. Please clock in first")
        if record.is_clocked_out:
            raise ValidationError(f"Already clocked out today at {record.clock_out_time:%H:%M}")

        open_session = await uow.sessions.get_open_for_attendance(record.attendance_id)
        if open_session is not None:
            raise ConflictError(
                f"Cannot clock out while a {open_session.session_type.value} session is open. Check out of it first"
            )
        open_log = await uow.location_logs.get_open_for_attendance(record.attendance_id)
        if open_log is not None:
            raise ConflictError(
                f'Cannot clock out while checked in at "{open_log.place_name}". Check out of it first'
            )

        if at <= record.clock_in_time:
            raise ValidationError("Clock-out time must be after clock-in time")

        fraud = self._fraud.analyze_travel(
            TravelPoint(record.clock_in_latitude, record.clock_in_longitude, record.clock_in_time),
            TravelPoint(latitude, longitude, at),
            context=f"clock_out user={user_id}",
        )
        return ClockOutDecision(
            attendance=record,
            total_hours=round(hours_between(record.clock_in_time, at), 2),
            fraud=fraud,
        )

    # ---------- sessions ----------
    async def validate_session_check_in(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        latitude: float,
        longitude: float,
        session_type: SessionType | str = SessionType.WORK,
    ) -> SessionCheckInDecision:
        validate_coordinates(latitude, longitude)
        kind = require_enum(session_type, SessionType, "session_type")

        attendance = await self._require_active_day(uow, user_id, work_date, "starting a session")

        open_session = await uow.sessions.get_open_for_attendance(attendance.attendance_id)
        if open_session is not None:
            raise ConflictError(
                f"A {open_session.session_type.value} session is already open since "
                f"{open_session.check_in_time:%H:%M}. Check out first"
            )

        if attendance.work_location is WorkLocation.REMOTE:
            return SessionCheckInDecision(attendance=attendance, session_type=kind, is_within_radius=None)

        result = await self._resolver.validate_location_access(user_id, latitude, longitude)
        if result.is_valid:
            return SessionCheckInDecision(attendance=attendance, session_type=kind, is_within_radius=True)
        return SessionCheckInDecision(
            attendance=attendance,
            session_type=kind,
            is_within_radius=False,
            flag_reason=f"Session check-in {OUTSIDE_AREA_REASON}: {result.error_message}",
        )

    async def validate_session_check_out(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        latitude: float,
        longitude: float,
        at: datetime,
    ) -> SessionCheckOutDecision:
        validate_coordinates(latitude, longitude)

        attendance = await uow.attendance.get_for_user_and_date(user_id, work_date)
        if attendance is None:
            raise NotFoundError("No attendance record found for today")
        session = await uow.sessions.get_open_for_attendance(attendance.attendance_id)
        if session is None:
            raise NotFoundError("No open session found. Please check in to a session first")
        if at <= session.check_in_time:
            raise ValidationError("Check-out time must be after check-in time")

        fraud = self._fraud.analyze_travel(
            TravelPoint(session.check_in_latitude, session.check_in_longitude, session.check_in_time),
            TravelPoint(latitude, longitude, at),
            context=f"session_check_out user={user_id}",
        )
        return SessionCheckOutDecision(
            session=session,
            duration_minutes=round_minutes(session.check_in_time, at),
            fraud=fraud,
        )

    # ---------- field visits ----------
    async def validate_location_check_in(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        entity_id: str,
        latitude: float,
        longitude: float,
    ) -> LocationCheckInDecision:
        validate_coordinates(latitude, longitude)
        entity_id = require_non_empty(entity_id, "entity_id")

        attendance = await self._require_active_day(uow, user_id, work_date, "checking in to a location")

        open_log = await uow.location_logs.get_open_for_attendance(attendance.attendance_id)
        if open_log is not None:
            raise ConflictError(f'Already checked in at "{open_log.place_name}". Check out first')

        if not await self._resolver.has_entity_access(user_id, entity_id):
            raise AccessDeniedError(f"You do not have access to entity {entity_id}")

        entity = await self._resolver.get_entity(entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} not found")

        # The requested entity only; a closer fence elsewhere does not count.
        measured = self._resolver.measure(entity, latitude, longitude)
        if not measured.is_within_radius:
            raise GeospatialError(
                f'Location is {round(measured.distance_meters)}m from entity "{entity.name}" '
                f"(radius: {entity.radius_meters}m)"
            )
        return LocationCheckInDecision(attendance=attendance, entity=entity, distance_meters=measured.distance_meters)

    async def validate_location_check_out(
        self,
        uow: UnitOfWork,
        *,
        user_id: str,
        work_date: date,
        latitude: float,
        longitude: float,
        at: datetime,
    ) -> LocationCheckOutDecision:
        validate_coordinates(latitude, longitude)

        attendance = await uow.attendance.get_for_user_and_date(user_id, work_date)
        if attendance is None:
            raise NotFoundError("No attendance record found for today")
        log = await uow.location_logs.get_open_for_attendance(attendance.attendance_id)
        if log is None:
            raise NotFoundError("No open location visit found. Please check in to a location first")
        if at <= log.check_in_time:
            raise ValidationError("Check-out time must be after check-in time")

        # Travel between consecutive visits: last completed visit's exit point.
        previous = await uow.location_logs.get_last_completed(attendance.attendance_id)
        reference = None
        if previous is not None and previous.check_out_time is not None:
            reference = TravelPoint(previous.check_out_latitude, previous.check_out_longitude, previous.check_out_time)

        fraud = self._fraud.analyze_travel(
            reference,
            TravelPoint(latitude, longitude, at),
            context=f"location_check_out user={user_id}",
        )
        return LocationCheckOutDecision(
            log=log,
            duration_minutes=round_minutes(log.check_in_time, at),
            fraud=fraud,
        )

    @staticmethod
    async def _require_active_day(uow: UnitOfWork, user_id: str, work_date: date, action: str) -> DailyAttendance:
        attendance = await uow.attendance.get_for_user_and_date(user_id, work_date)
        if attendance is None or not attendance.is_clocked_in:
            raise NotFoundError(f"You must clock in first before {action}")
        if attendance.is_clocked_out:
            raise ValidationError(f"Already clocked out for today; {action} is not allowed")
        return attendance
