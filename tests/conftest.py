from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Optional

import pytest

from src.geo_attendance.geo_attendance.attendance.executor import TransactionExecutor
from src.geo_attendance.geo_attendance.attendance.model import AttendanceSession, DailyAttendance, LocationLog
from src.geo_attendance.geo_attendance.attendance.service import AttendanceService
from src.geo_attendance.geo_attendance.attendance.validation import ValidationOrchestrator
from src.geo_attendance.geo_attendance.core.exceptions import ConflictError
from src.geo_attendance.geo_attendance.fraud.engine import FraudEngine
from src.geo_attendance.geo_attendance.geo.model import Entity
from src.geo_attendance.geo_attendance.geo.resolver import GeospatialResolver

_MISSING = object()

KATHMANDU_HQ = Entity(entity_id="hq", name="Kathmandu HQ", latitude=27.7172, longitude=85.3240, radius_meters=100)
# ~11 km east of HQ
BHAKTAPUR_SITE = Entity(entity_id="bkt", name="Bhaktapur Site", latitude=27.6710, longitude=85.4298, radius_meters=200)


async def _yield() -> None:
    # every storage call is a suspension point, as with a real driver
    await asyncio.sleep(0)


class InMemoryStore:
    """Committed state shared by every unit of work of a test."""

    def __init__(self):
        self.attendance: dict[int, DailyAttendance] = {}
        self.sessions: dict[int, AttendanceSession] = {}
        self.location_logs: dict[int, LocationLog] = {}
        self._ids = {"attendance": itertools.count(1), "session": itertools.count(1), "log": itertools.count(1)}
        self.commits = 0
        self.rollbacks = 0

    def next_id(self, kind: str) -> int:
        return next(self._ids[kind])


class _UndoLog:
    def __init__(self):
        self._entries: list[tuple[dict, int, object]] = []

    def put(self, table: dict, key: int, value) -> None:
        self._entries.append((table, key, table.get(key, _MISSING)))
        table[key] = value

    def undo(self) -> None:
        for table, key, previous in reversed(self._entries):
            if previous is _MISSING:
                table.pop(key, None)
            else:
                table[key] = previous
        self._entries.clear()

    def clear(self) -> None:
        self._entries.clear()


class InMemoryDailyAttendance:
    def __init__(self, store: InMemoryStore, undo: _UndoLog):
        self._store = store
        self._undo = undo

    async def get_by_id(self, attendance_id: int) -> Optional[DailyAttendance]:
        await _yield()
        return self._store.attendance.get(attendance_id)

    async def get_for_user_and_date(self, user_id: str, work_date: date) -> Optional[DailyAttendance]:
        await _yield()
        for r in self._store.attendance.values():
            if r.user_id == user_id and r.work_date == work_date:
                return r
        return None

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date):
        await _yield()
        rows = [r for r in self._store.attendance.values() if r.user_id == user_id and start_date <= r.work_date <= end_date]
        return sorted(rows, key=lambda r: r.work_date, reverse=True)

    async def list_flagged(self, limit: int):
        await _yield()
        rows = [r for r in self._store.attendance.values() if r.is_flagged]
        return sorted(rows, key=lambda r: (r.work_date, r.attendance_id), reverse=True)[:limit]

    async def create_clock_in(
        self,
        *,
        user_id,
        work_date,
        clock_in_time,
        latitude,
        longitude,
        work_location,
        entity_id,
        remote_location,
        is_within_radius,
        status,
        notes=None,
    ) -> int:
        await _yield()
        if any(r.user_id == user_id and r.work_date == work_date for r in self._store.attendance.values()):
            raise ConflictError(f"Attendance record already exists for user on {work_date.isoformat()}")
        attendance_id = self._store.next_id("attendance")
        self._undo.put(
            self._store.attendance,
            attendance_id,
            DailyAttendance(
                attendance_id=attendance_id,
                user_id=user_id,
                work_date=work_date,
                clock_in_time=clock_in_time,
                clock_in_latitude=latitude,
                clock_in_longitude=longitude,
                work_location=work_location,
                entity_id=entity_id,
                remote_location=remote_location,
                is_within_radius=is_within_radius,
                status=status,
                notes=notes,
            ),
        )
        return attendance_id

    async def update_clock_out(
        self, *, attendance_id, clock_out_time, latitude, longitude, total_hours, travel_speed_kmph, notes=None
    ) -> bool:
        await _yield()
        r = self._store.attendance.get(attendance_id)
        if r is None or r.clock_out_time is not None:
            return False
        self._undo.put(
            self._store.attendance,
            attendance_id,
            replace(
                r,
                clock_out_time=clock_out_time,
                clock_out_latitude=latitude,
                clock_out_longitude=longitude,
                total_hours=total_hours,
                travel_speed_kmph=travel_speed_kmph,
                notes=notes,
            ),
        )
        return True

    async def set_flag(self, *, attendance_id: int, flag_reason: str) -> bool:
        await _yield()
        r = self._store.attendance.get(attendance_id)
        if r is None:
            return False
        self._undo.put(self._store.attendance, attendance_id, replace(r, is_flagged=True, flag_reason=flag_reason))
        return True


class InMemorySessions:
    def __init__(self, store: InMemoryStore, undo: _UndoLog):
        self._store = store
        self._undo = undo

    async def get_by_id(self, session_id: int) -> Optional[AttendanceSession]:
        await _yield()
        return self._store.sessions.get(session_id)

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[AttendanceSession]:
        await _yield()
        for s in self._store.sessions.values():
            if s.attendance_id == attendance_id and s.check_out_time is None:
                return s
        return None

    async def list_flagged(self, limit: int):
        await _yield()
        rows = [s for s in self._store.sessions.values() if s.is_flagged]
        return sorted(rows, key=lambda s: s.check_in_time, reverse=True)[:limit]

    async def create_check_in(
        self, *, attendance_id, session_type, check_in_time, latitude, longitude, is_within_radius, notes=None
    ) -> int:
        await _yield()
        session_id = self._store.next_id("session")
        self._undo.put(
            self._store.sessions,
            session_id,
            AttendanceSession(
                session_id=session_id,
                attendance_id=attendance_id,
                session_type=session_type,
                check_in_time=check_in_time,
                check_in_latitude=latitude,
                check_in_longitude=longitude,
                is_within_radius=is_within_radius,
                notes=notes,
            ),
        )
        return session_id

    async def update_check_out(
        self, *, session_id, check_out_time, latitude, longitude, duration_minutes, travel_speed_kmph, notes=None
    ) -> bool:
        await _yield()
        s = self._store.sessions.get(session_id)
        if s is None or s.check_out_time is not None:
            return False
        self._undo.put(
            self._store.sessions,
            session_id,
            replace(
                s,
                check_out_time=check_out_time,
                check_out_latitude=latitude,
                check_out_longitude=longitude,
                session_duration_minutes=duration_minutes,
                travel_speed_kmph=travel_speed_kmph,
                notes=notes,
            ),
        )
        return True

    async def set_flag(self, *, session_id: int, flag_reason: str) -> bool:
        await _yield()
        s = self._store.sessions.get(session_id)
        if s is None:
            return False
        self._undo.put(self._store.sessions, session_id, replace(s, is_flagged=True, flag_reason=flag_reason))
        return True


class InMemoryLocationLogs:
    def __init__(self, store: InMemoryStore, undo: _UndoLog):
        self._store = store
        self._undo = undo

    async def get_by_id(self, log_id: int) -> Optional[LocationLog]:
        await _yield()
        return self._store.location_logs.get(log_id)

    async def get_open_for_attendance(self, attendance_id: int) -> Optional[LocationLog]:
        await _yield()
        for log in self._store.location_logs.values():
            if log.attendance_id == attendance_id and log.check_out_time is None:
                return log
        return None

    async def get_last_completed(self, attendance_id: int) -> Optional[LocationLog]:
        await _yield()
        done = [
            log
            for log in self._store.location_logs.values()
            if log.attendance_id == attendance_id and log.check_out_time is not None
        ]
        if not done:
            return None
        return max(done, key=lambda log: (log.check_out_time, log.log_id))

    async def list_for_user_between(self, user_id: str, start_date: date, end_date: date):
        await _yield()
        days = {
            a.attendance_id
            for a in self._store.attendance.values()
            if a.user_id == user_id and start_date <= a.work_date <= end_date
        }
        rows = [log for log in self._store.location_logs.values() if log.attendance_id in days]
        return sorted(rows, key=lambda log: log.check_in_time, reverse=True)

    async def list_flagged(self, limit: int):
        await _yield()
        rows = [log for log in self._store.location_logs.values() if log.is_flagged]
        return sorted(rows, key=lambda log: log.check_in_time, reverse=True)[:limit]

    async def create_check_in(
        self,
        *,
        attendance_id,
        entity_id,
        place_name,
        check_in_time,
        latitude,
        longitude,
        is_within_radius,
        purpose=None,
        notes=None,
    ) -> int:
        await _yield()
        log_id = self._store.next_id("log")
        self._undo.put(
            self._store.location_logs,
            log_id,
            LocationLog(
                log_id=log_id,
                attendance_id=attendance_id,
                entity_id=entity_id,
                place_name=place_name,
                check_in_time=check_in_time,
                check_in_latitude=latitude,
                check_in_longitude=longitude,
                is_within_radius=is_within_radius,
                purpose=purpose,
                notes=notes,
            ),
        )
        return log_id

    async def update_check_out(
        self, *, log_id, check_out_time, latitude, longitude, duration_minutes, travel_speed_kmph, notes=None
    ) -> bool:
        await _yield()
        log = self._store.location_logs.get(log_id)
        if log is None or log.check_out_time is not None:
            return False
        self._undo.put(
            self._store.location_logs,
            log_id,
            replace(
                log,
                check_out_time=check_out_time,
                check_out_latitude=latitude,
                check_out_longitude=longitude,
                visit_duration_minutes=duration_minutes,
                travel_speed_kmph=travel_speed_kmph,
                notes=notes,
            ),
        )
        return True

    async def set_flag(self, *, log_id: int, flag_reason: str) -> bool:
        await _yield()
        log = self._store.location_logs.get(log_id)
        if log is None:
            return False
        self._undo.put(self._store.location_logs, log_id, replace(log, is_flagged=True, flag_reason=flag_reason))
        return True


class InMemoryUnitOfWork:
    """Writes land in the store immediately; rollback replays the undo log."""

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._undo = _UndoLog()
        self.attendance = InMemoryDailyAttendance(store, self._undo)
        self.sessions = InMemorySessions(store, self._undo)
        self.location_logs = InMemoryLocationLogs(store, self._undo)
        self.began = False
        self.closed = False

    async def begin(self) -> None:
        await _yield()
        self.began = True

    async def commit(self) -> None:
        await _yield()
        self._undo.clear()
        self._store.commits += 1

    async def rollback(self) -> None:
        self._undo.undo()
        self._store.rollbacks += 1

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.rollback()
        await self.close()


class FakeEntityDirectory:
    def __init__(self, entities: list[Entity], access: dict[str, list[str]]):
        self._entities = {e.entity_id: e for e in entities}
        self._access = access

    async def list_accessible_entities(self, user_id: str):
        await _yield()
        return [self._entities[eid] for eid in self._access.get(user_id, []) if eid in self._entities]

    async def has_entity_access(self, user_id: str, entity_id: str) -> bool:
        await _yield()
        return entity_id in self._access.get(user_id, [])

    async def get_by_id(self, entity_id: str) -> Optional[Entity]:
        await _yield()
        return self._entities.get(entity_id)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class Harness:
    service: AttendanceService
    store: InMemoryStore
    clock: FakeClock
    executor: TransactionExecutor
    directory: FakeEntityDirectory
    fraud_engine: FraudEngine


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 31, 8, 30, 0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return lambda: InMemoryUnitOfWork(store)


@pytest.fixture
def directory() -> FakeEntityDirectory:
    return FakeEntityDirectory(
        [KATHMANDU_HQ, BHAKTAPUR_SITE],
        {"u1": ["hq", "bkt", "ghost"], "u2": ["hq"], "nobody": []},
    )


@pytest.fixture
def hq() -> Entity:
    return KATHMANDU_HQ


@pytest.fixture
def site() -> Entity:
    return BHAKTAPUR_SITE


@pytest.fixture
def harness(fixed_now, store, uow_factory, directory) -> Harness:
    clock = FakeClock(fixed_now)
    fraud_engine = FraudEngine()
    executor = TransactionExecutor(uow_factory, lock_timeout=None)
    validator = ValidationOrchestrator(GeospatialResolver(directory), fraud_engine)
    service = AttendanceService(executor, uow_factory, validator, fraud_engine, clock=clock)
    return Harness(
        service=service,
        store=store,
        clock=clock,
        executor=executor,
        directory=directory,
        fraud_engine=fraud_engine,
    )
