from __future__ import annotations

from typing import Optional

from ..attendance.mysql_attendance_repository import (
    MySQLAttendanceSessionRepository,
    MySQLDailyAttendanceRepository,
    MySQLLocationLogRepository,
)
from ..attendance.repository import UnitOfWork
from .connection import DatabaseConnection


class MySQLUnitOfWork(UnitOfWork):
    """One connection, one transaction, three repositories sharing its cursor."""

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory
        self._conn = None
        self._cur = None
        self.attendance: Optional[MySQLDailyAttendanceRepository] = None
        self.sessions: Optional[MySQLAttendanceSessionRepository] = None
        self.location_logs: Optional[MySQLLocationLogRepository] = None

    async def begin(self) -> None:
        self._conn = await self._conn_factory.connect()
        await self._conn.start_transaction()
        self._cur = await self._conn.cursor(dictionary=True)
        self.attendance = MySQLDailyAttendanceRepository(self._cur)
        self.sessions = MySQLAttendanceSessionRepository(self._cur)
        self.location_logs = MySQLLocationLogRepository(self._cur)

    async def commit(self) -> None:
        await self._conn.commit()

    async def rollback(self) -> None:
        if self._conn is not None:
            await self._conn.rollback()

    async def close(self) -> None:
        try:
            if self._cur is not None:
                await self._cur.close()
        finally:
            if self._conn is not None:
                await self._conn.close()
            self._cur = None
            self._conn = None

    async def __aenter__(self) -> "MySQLUnitOfWork":
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # Read-only usage: nothing to keep.
        try:
            await self.rollback()
        finally:
            await self.close()


def mysql_unit_of_work_factory(conn_factory: DatabaseConnection):
    def factory() -> MySQLUnitOfWork:
        return MySQLUnitOfWork(conn_factory)

    return factory
