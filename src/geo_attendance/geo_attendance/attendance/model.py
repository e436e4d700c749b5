from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from ..core.enums import AttendanceStatus, SessionType, WorkLocation


@dataclass(frozen=True)
class DailyAttendance:
    """Domain entity: one calendar-day attendance envelope per user."""

    attendance_id: int
    user_id: str
    work_date: date
    clock_in_time: Optional[datetime]
    clock_in_latitude: Optional[float]
    clock_in_longitude: Optional[float]
    work_location: WorkLocation = WorkLocation.OFFICE
    clock_out_time: Optional[datetime] = None
    clock_out_latitude: Optional[float] = None
    clock_out_longitude: Optional[float] = None
    entity_id: Optional[str] = None
    remote_location: Optional[str] = None
    is_within_radius: Optional[bool] = None
    travel_speed_kmph: Optional[float] = None
    is_flagged: bool = False
    flag_reason: Optional[str] = None
    total_hours: Optional[float] = None
    status: AttendanceStatus = AttendanceStatus.PRESENT
    notes: Optional[str] = None

    @property
    def is_clocked_in(self) -> bool:
        return self.clock_in_time is not None

    @property
    def is_clocked_out(self) -> bool:
        return self.clock_out_time is not None


@dataclass(frozen=True)
class AttendanceSession:
    """Domain entity: a bounded sub-activity (break, meeting, ...) within a day."""

    session_id: int
    attendance_id: int
    session_type: SessionType
    check_in_time: datetime
    check_in_latitude: float
    check_in_longitude: float
    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    is_within_radius: Optional[bool] = None
    travel_speed_kmph: Optional[float] = None
    is_flagged: bool = False
    flag_reason: Optional[str] = None
    session_duration_minutes: Optional[int] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None


@dataclass(frozen=True)
class LocationLog:
    """Domain entity: a field visit to an authorized entity."""

    log_id: int
    attendance_id: int
    entity_id: str
    place_name: str
    check_in_time: datetime
    check_in_latitude: float
    check_in_longitude: float
    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    is_within_radius: Optional[bool] = None
    travel_speed_kmph: Optional[float] = None
    is_flagged: bool = False
    flag_reason: Optional[str] = None
    visit_duration_minutes: Optional[int] = None
    purpose: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None


@dataclass(frozen=True)
class FlaggedRecords:
    """Read-model for the review queue."""

    attendance: list[DailyAttendance] = field(default_factory=list)
    sessions: list[AttendanceSession] = field(default_factory=list)
    location_logs: list[LocationLog] = field(default_factory=list)
