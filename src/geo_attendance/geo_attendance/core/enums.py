from __future__ import annotations

from enum import Enum


class WorkLocation(str, Enum):
    """Where the employee works for the day."""

    OFFICE = "OFFICE"
    REMOTE = "REMOTE"
    FIELD = "FIELD"


class SessionType(str, Enum):
    """Kinds of bounded sub-activities within a working day."""

    WORK = "work"
    BREAK = "break"
    LUNCH = "lunch"
    MEETING = "meeting"
    ERRAND = "errand"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OperationClass(str, Enum):
    """Category of state transition, used as the lock partition key."""

    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    SESSION_CHECK_IN = "session_check_in"
    SESSION_CHECK_OUT = "session_check_out"
    LOCATION_CHECK_IN = "location_check_in"
    LOCATION_CHECK_OUT = "location_check_out"


class RecordType(str, Enum):
    """Record kinds that can carry a fraud flag."""

    ATTENDANCE = "attendance"
    SESSION = "session"
    LOCATION_LOG = "location_log"


class AttendanceStatus(str, Enum):
    PRESENT = "Present"


class PatternType(str, Enum):
    """Dominant kind of repeated suspicious behaviour."""

    NONE = "none"
    SPEED_VIOLATIONS = "speed_violations"
    LOCATION_ANOMALIES = "location_anomalies"
    TIME_ANOMALIES = "time_anomalies"
