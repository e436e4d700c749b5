from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus, SessionType, WorkLocation
from .model import AttendanceSession, DailyAttendance, LocationLog


class DailyAttendanceRepository(Protocol):
    """Row access for daily_attendance.

    Note (DIP): the validation/executor layers depend on these interfaces, not on MySQL.
    """

    async def get_by_id(self, attendance_id: int) -> Optional[DailyAttendance]:
        raise NotImplementedError

    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[DailyAttendance]:
        raise NotImplementedError

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date) -> Sequence[DailyAttendance]:
        raise NotImplementedError

    async def list_flagged(self, limit: int) -> Sequence[DailyAttendance]:
        raise NotImplementedError

    async def create_clock_in(
        self,
        *,
        user_id: str,
        work_date: date,
        clock_in_time: datetime,
        latitude: float,
        longitude: float,
        work_location: WorkLocation,
        entity_id: Optional[str],
        remote_location: Optional[str],
        is_within_radius: Optional[bool],
        status: AttendanceStatus,
        notes: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    async def update_clock_out(
        self,
        *,
        attendance_id: int,
        clock_out_time: datetime,
        latitude: float,
        longitude: float,
        total_hours: float,
        travel_speed_kmph: Optional[float],
        notes: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    async def set_flag(self, *, attendance_id: int, flag_reason: str) -> bool:
        raise NotImplementedError


class AttendanceSessionRepository(Protocol):
    async def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        raise NotImplementedError

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[AttendanceSession]:
        raise NotImplementedError

    async def list_flagged(self, limit: int) -> Sequence[AttendanceSession]:
        raise NotImplementedError

    async def create_check_in(
        self,
        *,
        attendance_id: int,
        session_type: SessionType,
        check_in_time: datetime,
        latitude: float,
        longitude: float,
        is_within_radius: Optional[bool],
        notes: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    async def update_check_out(
        self,
        *,
        session_id: int,
        check_out_time: datetime,
        latitude: float,
        longitude: float,
        duration_minutes: int,
        travel_speed_kmph: Optional[float],
        notes: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    async def set_flag(self, *, session_id: int, flag_reason: str) -> bool:
        raise NotImplementedError


class LocationLogRepository(Protocol):
    async def get_by_id(self, log_id: int) -> Optional[LocationLog]:
        raise NotImplementedError

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[LocationLog]:
        raise NotImplementedError

    async def get_last_completed(self, attendance_id: int) -> Optional[LocationLog]:
        """Most recently checked-out log of the day."""

        raise NotImplementedError

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date) -> Sequence[LocationLog]:
        raise NotImplementedError

    async def list_flagged(self, limit: int) -> Sequence[LocationLog]:
        raise NotImplementedError

    async def create_check_in(
        self,
        *,
        attendance_id: int,
        entity_id: str,
        place_name: str,
        check_in_time: datetime,
        latitude: float,
        longitude: float,
        is_within_radius: bool,
        purpose: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    async def update_check_out(
        self,
        *,
        log_id: int,
        check_out_time: datetime,
        latitude: float,
        longitude: float,
        duration_minutes: int,
        travel_speed_kmph: Optional[float],
        notes: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError

    async def set_flag(self, *, log_id: int, flag_reason: str) -> bool:
        raise NotImplementedError


class UnitOfWork(Protocol):
    """One atomic transaction over the three attendance tables.

    Usable explicitly (begin/commit/rollback/close) or as an async context
    manager for read-only work, which never commits.
    """

    attendance: DailyAttendanceRepository
    sessions: AttendanceSessionRepository
    location_logs: LocationLogRepository

    async def begin(self) -> None:
        raise NotImplementedError

    async def commit(self) -> None:
        raise NotImplementedError

    async def rollback(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    async def __aenter__(self) -> "UnitOfWork":
        raise NotImplementedError

    async def __aexit__(self, exc_type, exc, tb) -> None:
        raise NotImplementedError


UnitOfWorkFactory = Callable[[], UnitOfWork]
