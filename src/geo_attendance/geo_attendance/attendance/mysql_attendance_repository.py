from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, Sequence

from mysql.connector import errors

from ..core.enums import AttendanceStatus, SessionType, WorkLocation
from ..core.exceptions import ConflictError
from ..database.mysql_base import fetchall, fetchone, to_bool, to_float
from .model import AttendanceSession, DailyAttendance, LocationLog
from .repository import AttendanceSessionRepository, DailyAttendanceRepository, LocationLogRepository

_ATTENDANCE_COLUMNS = """
    attendance_id, user_id, work_date, clock_in_time, clock_in_latitude, clock_in_longitude,
    clock_out_time, clock_out_latitude, clock_out_longitude, entity_id, work_location,
    remote_location, is_within_radius, travel_speed_kmph, is_flagged, flag_reason,
    total_hours, status, notes
"""

_SESSION_COLUMNS = """
    session_id, attendance_id, session_type, check_in_time, check_in_latitude, check_in_longitude,
    check_out_time, check_out_latitude, check_out_longitude, is_within_radius, travel_speed_kmph,
    is_flagged, flag_reason, session_duration_minutes, notes
"""

_LOG_COLUMNS = """
    log_id, attendance_id, entity_id, place_name, check_in_time, check_in_latitude, check_in_longitude,
    check_out_time, check_out_latitude, check_out_longitude, is_within_radius, travel_speed_kmph,
    is_flagged, flag_reason, visit_duration_minutes, purpose, notes
"""


def _to_attendance(r: Dict[str, Any]) -> DailyAttendance:
    return DailyAttendance(
        attendance_id=int(r["attendance_id"]),
        user_id=str(r["user_id"]),
        work_date=r["work_date"],
        clock_in_time=r.get("clock_in_time"),
        clock_in_latitude=to_float(r.get("clock_in_latitude")),
        clock_in_longitude=to_float(r.get("clock_in_longitude")),
        clock_out_time=r.get("clock_out_time"),
        clock_out_latitude=to_float(r.get("clock_out_latitude")),
        clock_out_longitude=to_float(r.get("clock_out_longitude")),
        entity_id=r.get("entity_id"),
        work_location=WorkLocation(r["work_location"]),
        remote_location=r.get("remote_location"),
        is_within_radius=to_bool(r.get("is_within_radius")),
        travel_speed_kmph=to_float(r.get("travel_speed_kmph")),
        is_flagged=bool(r.get("is_flagged")),
        flag_reason=r.get("flag_reason"),
        total_hours=to_float(r.get("total_hours")),
        status=AttendanceStatus(r["status"]),
        notes=r.get("notes"),
    )


def _to_session(r: Dict[str, Any]) -> AttendanceSession:
    return AttendanceSession(
        session_id=int(r["session_id"]),
        attendance_id=int(r["attendance_id"]),
        session_type=SessionType(r["session_type"]),
        check_in_time=r["check_in_time"],
        check_in_latitude=to_float(r["check_in_latitude"]),
        check_in_longitude=to_float(r["check_in_longitude"]),
        check_out_time=r.get("check_out_time"),
        check_out_latitude=to_float(r.get("check_out_latitude")),
        check_out_longitude=to_float(r.get("check_out_longitude")),
        is_within_radius=to_bool(r.get("is_within_radius")),
        travel_speed_kmph=to_float(r.get("travel_speed_kmph")),
        is_flagged=bool(r.get("is_flagged")),
        flag_reason=r.get("flag_reason"),
        session_duration_minutes=r.get("session_duration_minutes"),
        notes=r.get("notes"),
    )


def _to_log(r: Dict[str, Any]) -> LocationLog:
    return LocationLog(
        log_id=int(r["log_id"]),
        attendance_id=int(r["attendance_id"]),
        entity_id=str(r["entity_id"]),
        place_name=r["place_name"],
        check_in_time=r["check_in_time"],
        check_in_latitude=to_float(r["check_in_latitude"]),
        check_in_longitude=to_float(r["check_in_longitude"]),
        check_out_time=r.get("check_out_time"),
        check_out_latitude=to_float(r.get("check_out_latitude")),
        check_out_longitude=to_float(r.get("check_out_longitude")),
        is_within_radius=to_bool(r.get("is_within_radius")),
        travel_speed_kmph=to_float(r.get("travel_speed_kmph")),
        is_flagged=bool(r.get("is_flagged")),
        flag_reason=r.get("flag_reason"),
        visit_duration_minutes=r.get("visit_duration_minutes"),
        purpose=r.get("purpose"),
        notes=r.get("notes"),
    )


class MySQLDailyAttendanceRepository(DailyAttendanceRepository):
    """Runs on the cursor of the enclosing unit of work."""

    def __init__(self, cur):
        self._cur = cur

    async def get_by_id(self, attendance_id: int) -> Optional[DailyAttendance]:
        await self._cur.execute(
            f"SELECT {_ATTENDANCE_COLUMNS} FROM daily_attendance WHERE attendance_id=%s",
            (int(attendance_id),),
        )
        r = await fetchone(self._cur)
        return _to_attendance(r) if r else None

    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[DailyAttendance]:
        await self._cur.execute(
            f"SELECT {_ATTENDANCE_COLUMNS} FROM daily_attendance WHERE user_id=%s AND work_date=%s",
            (user_id, work_date),
        )
        r = await fetchone(self._cur)
        return _to_attendance(r) if r else None

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date) -> Sequence[DailyAttendance]:
        await self._cur.execute(
            f"""
            SELECT {_ATTENDANCE_COLUMNS}
            FROM daily_attendance
            WHERE user_id=%s AND work_date BETWEEN %s AND %s
            ORDER BY work_date DESC
            """,
            (user_id, start_date, end_date),
        )
        return [_to_attendance(r) for r in await fetchall(self._cur)]

    async def list_flagged(self, limit: int) -> Sequence[DailyAttendance]:
        await self._cur.execute(
            f"""
            SELECT {_ATTENDANCE_COLUMNS}
            FROM daily_attendance
            WHERE is_flagged=1
            ORDER BY work_date DESC, attendance_id DESC
            LIMIT %s
            """,
            (int(limit),),
        )
        return [_to_attendance(r) for r in await fetchall(self._cur)]

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
        try:
            await self._cur.execute(
                """
                INSERT INTO daily_attendance(
                    user_id, work_date, clock_in_time, clock_in_latitude, clock_in_longitude,
                    work_location, entity_id, remote_location, is_within_radius, status, notes
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    user_id,
                    work_date,
                    clock_in_time,
                    latitude,
                    longitude,
                    work_location.value,
                    entity_id,
                    remote_location,
                    is_within_radius,
                    status.value,
                    notes,
                ),
            )
        except errors.IntegrityError as e:
            # uq_daily_attendance_user_date: another instance won the race
            raise ConflictError(f"Attendance record already exists for user on {work_date.isoformat()}") from e
        return int(self._cur.lastrowid)

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
        await self._cur.execute(
            """
            UPDATE daily_attendance
            SET clock_out_time=%s, clock_out_latitude=%s, clock_out_longitude=%s,
                total_hours=%s, travel_speed_kmph=%s, notes=%s
            WHERE attendance_id=%s AND clock_out_time IS NULL
            """,
            (clock_out_time, latitude, longitude, total_hours, travel_speed_kmph, notes, int(attendance_id)),
        )
        return self._cur.rowcount > 0

    async def set_flag(self, *, attendance_id: int, flag_reason: str) -> bool:
        await self._cur.execute(
            "UPDATE daily_attendance SET is_flagged=1, flag_reason=%s WHERE attendance_id=%s",
            (flag_reason, int(attendance_id)),
        )
        return self._cur.rowcount > 0


class MySQLAttendanceSessionRepository(AttendanceSessionRepository):
    def __init__(self, cur):
        self._cur = cur

    async def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        await self._cur.execute(
            f"SELECT {_SESSION_COLUMNS} FROM attendance_sessions WHERE session_id=%s",
            (int(session_id),),
        )
        r = await fetchone(self._cur)
        return _to_session(r) if r else None

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[AttendanceSession]:
        await self._cur.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM attendance_sessions
            WHERE attendance_id=%s AND check_out_time IS NULL
            ORDER BY check_in_time DESC
            LIMIT 1
            """,
            (int(attendance_id),),
        )
        r = await fetchone(self._cur)
        return _to_session(r) if r else None

    async def list_flagged(self, limit: int) -> Sequence[AttendanceSession]:
        await self._cur.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM attendance_sessions
            WHERE is_flagged=1
            ORDER BY check_in_time DESC
            LIMIT %s
            """,
            (int(limit),),
        )
        return [_to_session(r) for r in await fetchall(self._cur)]

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
        await self._cur.execute(
            """
            INSERT INTO attendance_sessions(
                attendance_id, session_type, check_in_time, check_in_latitude, check_in_longitude,
                is_within_radius, notes
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s)
            """,
            (int(attendance_id), session_type.value, check_in_time, latitude, longitude, is_within_radius, notes),
        )
        return int(self._cur.lastrowid)

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
        await self._cur.execute(
            """
            UPDATE attendance_sessions
            SET check_out_time=%s, check_out_latitude=%s, check_out_longitude=%s,
                session_duration_minutes=%s, travel_speed_kmph=%s, notes=%s
            WHERE session_id=%s AND check_out_time IS NULL
            """,
            (check_out_time, latitude, longitude, int(duration_minutes), travel_speed_kmph, notes, int(session_id)),
        )
        return self._cur.rowcount > 0

    async def set_flag(self, *, session_id: int, flag_reason: str) -> bool:
        await self._cur.execute(
            "UPDATE attendance_sessions SET is_flagged=1, flag_reason=%s WHERE session_id=%s",
            (flag_reason, int(session_id)),
        )
        return self._cur.rowcount > 0


class MySQLLocationLogRepository(LocationLogRepository):
    def __init__(self, cur):
        self._cur = cur

    async def get_by_id(self, log_id: int) -> Optional[LocationLog]:
        await self._cur.execute(f"SELECT {_LOG_COLUMNS} FROM location_logs WHERE log_id=%s", (int(log_id),))
        r = await fetchone(self._cur)
        return _to_log(r) if r else None

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[LocationLog]:
        await self._cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM location_logs
            WHERE attendance_id=%s AND check_out_time IS NULL
            ORDER BY check_in_time DESC
            LIMIT 1
            """,
            (int(attendance_id),),
        )
        r = await fetchone(self._cur)
        return _to_log(r) if r else None

    async def get_last_completed(self, attendance_id: int) -> Optional[LocationLog]:
        await self._cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM location_logs
            WHERE attendance_id=%s AND check_out_time IS NOT NULL
            ORDER BY check_out_time DESC, log_id DESC
            LIMIT 1
            """,
            (int(attendance_id),),
        )
        r = await fetchone(self._cur)
        return _to_log(r) if r else None

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date) -> Sequence[LocationLog]:
        await self._cur.execute(
            """
            SELECT ll.log_id, ll.attendance_id, ll.entity_id, ll.place_name, ll.check_in_time,
                   ll.check_in_latitude, ll.check_in_longitude, ll.check_out_time,
                   ll.check_out_latitude, ll.check_out_longitude, ll.is_within_radius,
                   ll.travel_speed_kmph, ll.is_flagged, ll.flag_reason, ll.visit_duration_minutes,
                   ll.purpose, ll.notes
            FROM location_logs ll
            JOIN daily_attendance da ON da.attendance_id = ll.attendance_id
            WHERE da.user_id=%s AND da.work_date BETWEEN %s AND %s
            ORDER BY ll.check_in_time DESC
            """,
            (user_id, start_date, end_date),
        )
        return [_to_log(r) for r in await fetchall(self._cur)]

    async def list_flagged(self, limit: int) -> Sequence[LocationLog]:
        await self._cur.execute(
            f"""
            SELECT {_LOG_COLUMNS}
            FROM location_logs
            WHERE is_flagged=1
            ORDER BY check_in_time DESC
            LIMIT %s
            """,
            (int(limit),),
        )
        return [_to_log(r) for r in await fetchall(self._cur)]

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
        await self._cur.execute(
            """
            INSERT INTO location_logs(
                attendance_id, entity_id, place_name, check_in_time, check_in_latitude,
                check_in_longitude, is_within_radius, purpose, notes
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (int(attendance_id), entity_id, place_name, check_in_time, latitude, longitude, is_within_radius, purpose, notes),
        )
        return int(self._cur.lastrowid)

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
        await self._cur.execute(
            """
            UPDATE location_logs
            SET check_out_time=%s, check_out_latitude=%s, check_out_longitude=%s,
                visit_duration_minutes=%s, travel_speed_kmph=%s, notes=%s
            WHERE log_id=%s AND check_out_time IS NULL
            """,
            (check_out_time, latitude, longitude, int(duration_minutes), travel_speed_kmph, notes, int(log_id)),
        )
        return self._cur.rowcount > 0

    async def set_flag(self, *, log_id: int, flag_reason: str) -> bool:
        await self._cur.execute(
            "UPDATE location_logs SET is_flagged=1, flag_reason=%s WHERE log_id=%s",
            (flag_reason, int(log_id)),
        )
        return self._cur.rowcount > 0
