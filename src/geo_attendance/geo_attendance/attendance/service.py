from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from ..common.datetime_utils import now_local
from ..common.validators import append_note, optional_text, require_non_empty
from ..core.constants import DEFAULT_FLAGGED_LIMIT
from ..core.enums import AttendanceStatus, OperationClass, RecordType, SessionType, WorkLocation
from ..core.exceptions import ConflictError, ValidationError
from ..fraud.engine import FraudAnalysis, FraudEngine, PatternAnalysis
from .executor import TransactionExecutor
from .model import AttendanceSession, DailyAttendance, FlaggedRecords, LocationLog
from .repository import UnitOfWork, UnitOfWorkFactory
from .validation import ValidationOrchestrator

logger = logging.getLogger(__name__)


class AttendanceService:
    """Attendance use cases: clock in/out, sessions and field visits.

    Every write goes through the TransactionExecutor; the state each rule
    checks is re-read inside that transaction.
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        uow_factory: UnitOfWorkFactory,
        validator: ValidationOrchestrator,
        fraud_engine: FraudEngine,
        *,
        clock: Callable[[], datetime] = now_local,
        flagged_limit: int = DEFAULT_FLAGGED_LIMIT,
    ):
        self._executor = executor
        self._uow_factory = uow_factory
        self._validator = validator
        self._fraud = fraud_engine
        self._clock = clock
        self._flagged_limit = int(flagged_limit)

    # ---------- daily clock ----------
    async def clock_in(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
        work_location: WorkLocation | str = WorkLocation.OFFICE,
        remote_location: Optional[str] = None,
    ) -> DailyAttendance:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> DailyAttendance:
            now = self._clock()
            decision = await self._validator.validate_clock_in(
                uow,
                user_id=user_id,
                work_date=now.date(),
                latitude=latitude,
                longitude=longitude,
                work_location=work_location,
                remote_location=remote_location,
            )
            attendance_id = await uow.attendance.create_clock_in(
                user_id=user_id,
                work_date=now.date(),
                clock_in_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                work_location=decision.work_location,
                entity_id=decision.entity_id,
                remote_location=decision.remote_location,
                is_within_radius=decision.is_within_radius,
                status=AttendanceStatus.PRESENT,
                notes=optional_text(notes),
            )
            if decision.flag_reason:
                await self._fraud.flag_suspicious_activity(uow, attendance_id, RecordType.ATTENDANCE, decision.flag_reason)

            logger.info("User %s clocked in (%s, entity=%s)", user_id, decision.work_location.value, decision.entity_id)
            return await uow.attendance.get_by_id(attendance_id)

        return await self._executor.execute(user_id, OperationClass.CLOCK_IN, work)

    async def clock_out(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
    ) -> DailyAttendance:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> DailyAttendance:
            now = self._clock()
            decision = await self._validator.validate_clock_out(
                uow, user_id=user_id, work_date=now.date(), latitude=latitude, longitude=longitude, at=now
            )
            record = decision.attendance
            updated = await uow.attendance.update_clock_out(
                attendance_id=record.attendance_id,
                clock_out_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                total_hours=decision.total_hours,
                travel_speed_kmph=decision.fraud.travel_speed_kmph,
                notes=append_note(record.notes, notes),
            )
            if not updated:
                raise ConflictError("Attendance was already clocked out")
            await self._flag_if_suspicious(uow, record.attendance_id, RecordType.ATTENDANCE, decision.fraud)

            logger.info("User %s clocked out after %.2fh", user_id, decision.total_hours)
            return await uow.attendance.get_by_id(record.attendance_id)

        return await self._executor.execute(user_id, OperationClass.CLOCK_OUT, work)

    # ---------- sessions ----------
    async def session_check_in(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
        session_type: SessionType | str = SessionType.WORK,
        notes: Optional[str] = None,
    ) -> AttendanceSession:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> AttendanceSession:
            now = self._clock()
            decision = await self._validator.validate_session_check_in(
                uow,
                user_id=user_id,
                work_date=now.date(),
                latitude=latitude,
                longitude=longitude,
                session_type=session_type,
            )
            session_id = await uow.sessions.create_check_in(
                attendance_id=decision.attendance.attendance_id,
                session_type=decision.session_type,
                check_in_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                is_within_radius=decision.is_within_radius,
                notes=optional_text(notes),
            )
            if decision.flag_reason:
                await self._fraud.flag_suspicious_activity(uow, session_id, RecordType.SESSION, decision.flag_reason)
            return await uow.sessions.get_by_id(session_id)

        return await self._executor.execute(user_id, OperationClass.SESSION_CHECK_IN, work)

    async def session_check_out(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
    ) -> AttendanceSession:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> AttendanceSession:
            now = self._clock()
            decision = await self._validator.validate_session_check_out(
                uow, user_id=user_id, work_date=now.date(), latitude=latitude, longitude=longitude, at=now
            )
            session = decision.session
            updated = await uow.sessions.update_check_out(
                session_id=session.session_id,
                check_out_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                duration_minutes=decision.duration_minutes,
                travel_speed_kmph=decision.fraud.travel_speed_kmph,
                notes=append_note(session.notes, notes),
            )
            if not updated:
                raise ConflictError("Session was already checked out")
            await self._flag_if_suspicious(uow, session.session_id, RecordType.SESSION, decision.fraud)
            return await uow.sessions.get_by_id(session.session_id)

        return await self._executor.execute(user_id, OperationClass.SESSION_CHECK_OUT, work)

    # ---------- field visits ----------
    async def location_check_in(
        self,
        user_id: str,
        *,
        entity_id: str,
        latitude: float,
        longitude: float,
        purpose: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LocationLog:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> LocationLog:
            now = self._clock()
            decision = await self._validator.validate_location_check_in(
                uow,
                user_id=user_id,
                work_date=now.date(),
                entity_id=entity_id,
                latitude=latitude,
                longitude=longitude,
            )
            log_id = await uow.location_logs.create_check_in(
                attendance_id=decision.attendance.attendance_id,
                entity_id=decision.entity.entity_id,
                place_name=decision.entity.name,
                check_in_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                is_within_radius=decision.is_within_radius,
                purpose=optional_text(purpose),
                notes=optional_text(notes),
            )
            logger.info(
                "User %s checked in at %s (%.0fm from center)", user_id, decision.entity.entity_id, decision.distance_meters
            )
            return await uow.location_logs.get_by_id(log_id)

        return await self._executor.execute(user_id, OperationClass.LOCATION_CHECK_IN, work)

    async def location_check_out(
        self,
        user_id: str,
        *,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
    ) -> LocationLog:
        user_id = require_non_empty(user_id, "user_id")

        async def work(uow: UnitOfWork) -> LocationLog:
            now = self._clock()
            decision = await self._validator.validate_location_check_out(
                uow, user_id=user_id, work_date=now.date(), latitude=latitude, longitude=longitude, at=now
            )
            log = decision.log
            updated = await uow.location_logs.update_check_out(
                log_id=log.log_id,
                check_out_time=now,
                latitude=float(latitude),
                longitude=float(longitude),
                duration_minutes=decision.duration_minutes,
                travel_speed_kmph=decision.fraud.travel_speed_kmph,
                notes=append_note(log.notes, notes),
            )
            if not updated:
                raise ConflictError("Location visit was already checked out")
            await self._flag_if_suspicious(uow, log.log_id, RecordType.LOCATION_LOG, decision.fraud)
            return await uow.location_logs.get_by_id(log.log_id)

        return await self._executor.execute(user_id, OperationClass.LOCATION_CHECK_OUT, work)

    # ---------- queries ----------
    async def get_today_attendance(self, user_id: str) -> Optional[DailyAttendance]:
        return await self.get_attendance_by_date(user_id, self._clock().date())

    async def get_attendance_by_date(self, user_id: str, work_date: date) -> Optional[DailyAttendance]:
        async with self._uow_factory() as uow:
            return await uow.attendance.get_for_user_and_date(user_id, work_date)

    async def get_current_session(self, user_id: str) -> Optional[AttendanceSession]:
        async with self._uow_factory() as uow:
            attendance = await uow.attendance.get_for_user_and_date(user_id, self._clock().date())
            if attendance is None:
                return None
            return await uow.sessions.get_open_for_attendance(attendance.attendance_id)

    async def get_current_location_log(self, user_id: str) -> Optional[LocationLog]:
        async with self._uow_factory() as uow:
            attendance = await uow.attendance.get_for_user_and_date(user_id, self._clock().date())
            if attendance is None:
                return None
            return await uow.location_logs.get_open_for_attendance(attendance.attendance_id)

    async def get_history(self, user_id: str, start: date, end: date) -> list[DailyAttendance]:
        _check_range(start, end)
        async with self._uow_factory() as uow:
            return list(await uow.attendance.list_for_user_between(user_id, start, end))

    async def get_location_history(self, user_id: str, start: date, end: date) -> list[LocationLog]:
        _check_range(start, end)
        async with self._uow_factory() as uow:
            return list(await uow.location_logs.list_for_user_between(user_id, start, end))

    async def get_flagged_records(self, limit: Optional[int] = None) -> FlaggedRecords:
        """Review queue: flagged rows of each kind, newest first, `limit` per kind."""
        limit = self._flagged_limit if limit is None else int(limit)
        if limit <= 0:
            raise ValidationError("limit must be a positive integer")
        async with self._uow_factory() as uow:
            return FlaggedRecords(
                attendance=list(await uow.attendance.list_flagged(limit)),
                sessions=list(await uow.sessions.list_flagged(limit)),
                location_logs=list(await uow.location_logs.list_flagged(limit)),
            )

    async def get_user_patterns(self, user_id: str, days: Optional[int] = None) -> PatternAnalysis:
        """Repeated suspicious behaviour over the last `days` days (policy window by default)."""
        user_id = require_non_empty(user_id, "user_id")
        async with self._uow_factory() as uow:
            return await self._fraud.analyze_user_patterns(uow, user_id, days=days, as_of=self._clock().date())

    async def _flag_if_suspicious(
        self, uow: UnitOfWork, record_id: int, record_type: RecordType, fraud: FraudAnalysis
    ) -> None:
        if fraud.is_suspicious and fraud.flag_reason:
            await self._fraud.flag_suspicious_activity(uow, record_id, record_type, fraud.flag_reason)


def _check_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError("start must be on or before end")
