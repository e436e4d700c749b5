from __future__ import annotations

import logging
import statistics
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from ..attendance.model import DailyAttendance
from ..attendance.repository import UnitOfWork
from ..common.datetime_utils import minutes_between, now_local
from ..core.constants import FLAG_REASON_SEPARATOR, OUTSIDE_AREA_REASON
from ..core.enums import PatternType, RecordType, RiskLevel
from ..core.exceptions import NotFoundError, ValidationError
from ..geo.distance import distance, speed
from .policy import FraudPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TravelPoint:
    latitude: float
    longitude: float
    at: datetime


@dataclass(frozen=True)
class FraudAnalysis:
    is_suspicious: bool
    risk_level: RiskLevel
    travel_speed_kmph: Optional[float] = None
    distance_meters: Optional[float] = None
    elapsed_minutes: Optional[float] = None
    flag_reason: Optional[str] = None

    @classmethod
    def skipped(cls) -> "FraudAnalysis":
        """No reference point: nothing to compare against."""
        return cls(is_suspicious=False, risk_level=RiskLevel.LOW)


@dataclass(frozen=True)
class PatternAnalysis:
    """Repeated suspicious behaviour of one user over a window of days."""

    has_pattern: bool
    pattern_type: PatternType
    occurrences: int
    risk_level: RiskLevel
    speed_violations: int
    max_speed_kmph: Optional[float]
    location_anomalies: int
    repeated_locations: int
    time_anomalies: int
    consistency_score: int
    start_date: date
    end_date: date


def merge_flag_reason(existing: Optional[str], reason: str) -> str:
    """Append a reason, never dropping earlier ones; a repeated reason is kept once."""
    if not existing:
        return reason
    parts = existing.split(FLAG_REASON_SEPARATOR)
    if reason in parts:
        return existing
    return f"{existing}{FLAG_REASON_SEPARATOR}{reason}"


class FraudEngine:
    """Travel-speed heuristic between two consecutive events of the same chain.

    Flags are advisory data for later review, never errors.
    """

    def __init__(self, policy: Optional[FraudPolicy] = None):
        self._policy = policy or FraudPolicy()

    @property
    def policy(self) -> FraudPolicy:
        return self._policy

    def classify(self, speed_kmh: float) -> tuple[RiskLevel, bool, Optional[str]]:
        if speed_kmh > self._policy.high_speed_kmh:
            return RiskLevel.HIGH, True, f"Impossible travel speed detected ({speed_kmh:.2f} km/h)"
        if speed_kmh >= self._policy.medium_speed_kmh:
            return RiskLevel.MEDIUM, False, None
        return RiskLevel.LOW, False, None

    def analyze_travel(
        self,
        reference: Optional[TravelPoint],
        candidate: TravelPoint,
        *,
        context: str = "",
    ) -> FraudAnalysis:
        if reference is None:
            return FraudAnalysis.skipped()

        meters = distance(reference.latitude, reference.longitude, candidate.latitude, candidate.longitude)
        elapsed = minutes_between(reference.at, candidate.at)
        if elapsed <= 0:
            # near-simultaneous events carry no speed signal
            return FraudAnalysis(
                is_suspicious=False,
                risk_level=RiskLevel.LOW,
                travel_speed_kmph=0.0,
                distance_meters=meters,
                elapsed_minutes=elapsed,
            )

        kmh = speed(meters, elapsed)
        risk, suspicious, reason = self.classify(kmh)

        if risk is RiskLevel.HIGH:
            logger.warning("%s: %s over %.0fm in %.1f min", context or "travel", reason, meters, elapsed)
        elif risk is RiskLevel.MEDIUM:
            logger.info("%s: elevated travel speed %.2f km/h over %.0fm in %.1f min", context or "travel", kmh, meters, elapsed)

        return FraudAnalysis(
            is_suspicious=suspicious,
            risk_level=risk,
            travel_speed_kmph=round(kmh, 2),
            distance_meters=meters,
            elapsed_minutes=elapsed,
            flag_reason=reason,
        )

    async def flag_suspicious_activity(
        self,
        uow: UnitOfWork,
        record_id: int,
        record_type: RecordType,
        reason: str,
    ) -> str:
        """Persist a flag reason onto the record, appending to any earlier reason.

        Runs inside the caller's transaction. Returns the stored reason.
        """
        if record_type is RecordType.ATTENDANCE:
            record = await uow.attendance.get_by_id(record_id)
        elif record_type is RecordType.SESSION:
            record = await uow.sessions.get_by_id(record_id)
        else:
            record = await uow.location_logs.get_by_id(record_id)

        if record is None:
            raise NotFoundError(f"No {record_type.value} record with id {record_id}")

        merged = merge_flag_reason(record.flag_reason, reason)
        if record_type is RecordType.ATTENDANCE:
            await uow.attendance.set_flag(attendance_id=record_id, flag_reason=merged)
        elif record_type is RecordType.SESSION:
            await uow.sessions.set_flag(session_id=record_id, flag_reason=merged)
        else:
            await uow.location_logs.set_flag(log_id=record_id, flag_reason=merged)

        logger.warning("Flagged %s %s: %s", record_type.value, record_id, reason)
        return merged

    async def analyze_user_patterns(
        self,
        uow: UnitOfWork,
        user_id: str,
        *,
        days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> PatternAnalysis:
        """Look for repeated suspicious behaviour in the user's recent attendance."""
        days = self._policy.pattern_window_days if days is None else int(days)
        if days <= 0:
            raise ValidationError("days must be a positive integer")
        end = as_of or now_local().date()
        start = end - timedelta(days=days)

        history = await uow.attendance.list_for_user_between(user_id, start, end)
        analysis = self.summarize_patterns(history, start_date=start, end_date=end)
        if analysis.has_pattern:
            logger.warning(
                "User %s: %s pattern, %d suspicious day(s) since %s (risk %s)",
                user_id,
                analysis.pattern_type.value,
                analysis.occurrences,
                start.isoformat(),
                analysis.risk_level.value,
            )
        return analysis

    def summarize_patterns(
        self, history: Sequence[DailyAttendance], *, start_date: date, end_date: date
    ) -> PatternAnalysis:
        policy = self._policy

        speeding = [
            r.travel_speed_kmph
            for r in history
            if r.is_flagged and r.travel_speed_kmph is not None and r.travel_speed_kmph > policy.medium_speed_kmh
        ]

        outside = [r for r in history if r.is_flagged and OUTSIDE_AREA_REASON in (r.flag_reason or "")]
        # ~100 m cells
        cells = Counter(
            (round(r.clock_in_latitude * 1000), round(r.clock_in_longitude * 1000))
            for r in outside
            if r.clock_in_latitude is not None and r.clock_in_longitude is not None
        )
        repeated = sum(1 for n in cells.values() if n >= policy.repeated_location_threshold)

        clock_ins = [r.clock_in_time.hour * 60 + r.clock_in_time.minute for r in history if r.clock_in_time]
        time_anomalies = 0
        consistency = 0
        if len(clock_ins) > 1:
            mean = statistics.fmean(clock_ins)
            stdev = statistics.pstdev(clock_ins)
            time_anomalies = sum(1 for m in clock_ins if abs(m - mean) > policy.time_deviation_minutes)
            consistency = round(max(0.0, 100 - stdev / 2))

        total = len(speeding) + len(outside) + time_anomalies
        has_pattern = total >= policy.pattern_threshold
        if not has_pattern:
            risk, kind = RiskLevel.LOW, PatternType.NONE
        else:
            risk = RiskLevel.HIGH if total >= policy.pattern_high_threshold else RiskLevel.MEDIUM
            if len(speeding) >= len(outside) and len(speeding) >= time_anomalies:
                kind = PatternType.SPEED_VIOLATIONS
            elif len(outside) >= time_anomalies:
                kind = PatternType.LOCATION_ANOMALIES
            else:
                kind = PatternType.TIME_ANOMALIES

        return PatternAnalysis(
            has_pattern=has_pattern,
            pattern_type=kind,
            occurrences=total,
            risk_level=risk,
            speed_violations=len(speeding),
            max_speed_kmph=max(speeding) if speeding else None,
            location_anomalies=len(outside),
            repeated_locations=repeated,
            time_anomalies=time_anomalies,
            consistency_score=consistency,
            start_date=start_date,
            end_date=end_date,
        )
