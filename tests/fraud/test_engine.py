from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta

import pytest

from src.geo_attendance.geo_attendance.attendance.model import DailyAttendance
from src.geo_attendance.geo_attendance.core.enums import (
    AttendanceStatus,
    PatternType,
    RecordType,
    RiskLevel,
    WorkLocation,
)
from src.geo_attendance.geo_attendance.core.exceptions import NotFoundError, ValidationError
from src.geo_attendance.geo_attendance.fraud.engine import FraudEngine, TravelPoint, merge_flag_reason
from src.geo_attendance.geo_attendance.fraud.policy import FraudPolicy

T0 = datetime(2026, 1, 31, 9, 0)


def test_no_reference_point_skips_check():
    analysis = FraudEngine().analyze_travel(None, TravelPoint(27.7172, 85.3240, T0))

    assert analysis.is_suspicious is False
    assert analysis.risk_level is RiskLevel.LOW
    assert analysis.travel_speed_kmph is None


def test_no_movement_is_not_suspicious():
    engine = FraudEngine()
    a = TravelPoint(27.7172, 85.3240, T0)
    b = TravelPoint(27.7172, 85.3240, T0 + timedelta(minutes=30))

    analysis = engine.analyze_travel(a, b)

    assert analysis.travel_speed_kmph == 0
    assert analysis.is_suspicious is False
    assert analysis.risk_level is RiskLevel.LOW


def test_fifty_km_in_one_minute_is_high_risk():
    engine = FraudEngine()
    a = TravelPoint(0.0, 0.0, T0)
    # ~50 km due north
    b = TravelPoint(50_000 / 111_194.93, 0.0, T0 + timedelta(minutes=1))

    analysis = engine.analyze_travel(a, b)

    assert analysis.is_suspicious is True
    assert analysis.risk_level is RiskLevel.HIGH
    assert analysis.travel_speed_kmph == pytest.approx(3000.0, rel=1e-3)
    assert "speed" in analysis.flag_reason
    assert analysis.flag_reason.startswith("Impossible travel speed detected (")


def test_medium_speed_is_logged_not_flagged(caplog):
    engine = FraudEngine()
    a = TravelPoint(0.0, 0.0, T0)
    # ~80 km/h
    b = TravelPoint(80_000 / 111_194.93, 0.0, T0 + timedelta(hours=1))

    with caplog.at_level("INFO", logger="src.geo_attendance.geo_attendance.fraud.engine"):
        analysis = engine.analyze_travel(a, b)

    assert analysis.risk_level is RiskLevel.MEDIUM
    assert analysis.is_suspicious is False
    assert analysis.flag_reason is None
    assert "elevated travel speed" in caplog.text


def test_same_instant_counts_as_zero_speed():
    engine = FraudEngine()
    analysis = engine.analyze_travel(TravelPoint(0, 0, T0), TravelPoint(1, 1, T0))

    assert analysis.travel_speed_kmph == 0.0
    assert analysis.is_suspicious is False


def test_thresholds_come_from_policy():
    engine = FraudEngine(FraudPolicy(high_speed_kmh=40, medium_speed_kmh=20))

    assert engine.classify(41)[0] is RiskLevel.HIGH
    assert engine.classify(40)[0] is RiskLevel.MEDIUM
    assert engine.classify(20)[0] is RiskLevel.MEDIUM
    assert engine.classify(19.9)[0] is RiskLevel.LOW


def test_policy_rejects_inverted_thresholds():
    with pytest.raises(ValidationError):
        FraudPolicy(high_speed_kmh=50, medium_speed_kmh=60)
    with pytest.raises(ValidationError):
        FraudPolicy(high_speed_kmh=0)


def test_policy_from_settings():
    class Settings:
        FRAUD_HIGH_SPEED_KMH = "200"
        FRAUD_MEDIUM_SPEED_KMH = 100

    policy = FraudPolicy.from_settings(Settings)

    assert policy.high_speed_kmh == 200.0
    assert policy.medium_speed_kmh == 100.0
    assert FraudPolicy.from_settings(None) == FraudPolicy()


def test_merge_flag_reason_appends_and_dedupes():
    assert merge_flag_reason(None, "A") == "A"
    assert merge_flag_reason("A", "B") == "A; B"
    assert merge_flag_reason("A; B", "A") == "A; B"


def test_flagging_twice_keeps_both_reasons(store, uow_factory):
    async def scenario():
        uow = uow_factory()
        await uow.begin()
        attendance_id = await uow.attendance.create_clock_in(
            user_id="u1",
            work_date=T0.date(),
            clock_in_time=T0,
            latitude=27.7172,
            longitude=85.3240,
            work_location=WorkLocation.OFFICE,
            entity_id="hq",
            remote_location=None,
            is_within_radius=True,
            status=AttendanceStatus.PRESENT,
        )
        engine = FraudEngine()
        await engine.flag_suspicious_activity(uow, attendance_id, RecordType.ATTENDANCE, "A")
        stored = await engine.flag_suspicious_activity(uow, attendance_id, RecordType.ATTENDANCE, "B")
        await uow.commit()
        return attendance_id, stored

    attendance_id, stored = asyncio.run(scenario())

    assert stored == "A; B"
    assert store.attendance[attendance_id].is_flagged is True
    assert store.attendance[attendance_id].flag_reason == "A; B"


def test_flagging_missing_record_raises(uow_factory):
    async def scenario():
        uow = uow_factory()
        await uow.begin()
        await FraudEngine().flag_suspicious_activity(uow, 999, RecordType.SESSION, "x")

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


# ---------- repeated behaviour ----------
AS_OF = date(2026, 1, 31)


def _day(store, days_ago, *, hour=9, minute=0, speed=None, reason=None, at=(27.7172, 85.3240), user_id="u1"):
    work_date = AS_OF - timedelta(days=days_ago)
    attendance_id = store.next_id("attendance")
    store.attendance[attendance_id] = DailyAttendance(
        attendance_id=attendance_id,
        user_id=user_id,
        work_date=work_date,
        clock_in_time=datetime.combine(work_date, datetime.min.time()).replace(hour=hour, minute=minute),
        clock_in_latitude=at[0],
        clock_in_longitude=at[1],
        travel_speed_kmph=speed,
        is_flagged=reason is not None,
        flag_reason=reason,
    )


def _patterns(engine, uow_factory, user_id="u1", **kwargs):
    async def scenario():
        async with uow_factory() as uow:
            return await engine.analyze_user_patterns(uow, user_id, as_of=AS_OF, **kwargs)

    return asyncio.run(scenario())


def test_clean_history_has_no_pattern(store, uow_factory):
    for n in range(5):
        _day(store, n, minute=n)

    analysis = _patterns(FraudEngine(), uow_factory)

    assert analysis.has_pattern is False
    assert analysis.pattern_type is PatternType.NONE
    assert analysis.risk_level is RiskLevel.LOW
    assert analysis.occurrences == 0
    assert analysis.consistency_score > 95
    assert analysis.start_date == date(2026, 1, 1)


def test_three_speed_flags_make_a_medium_speed_pattern(store, uow_factory, caplog):
    for n, kmh in enumerate([150.0, 310.5, 200.0]):
        _day(store, n, speed=kmh, reason=f"Impossible travel speed detected ({kmh:.2f} km/h)")
    # another user's flags do not count
    _day(store, 0, speed=500.0, reason="Impossible travel speed detected (500.00 km/h)", user_id="u2")

    with caplog.at_level("WARNING", logger="src.geo_attendance.geo_attendance.fraud.engine"):
        analysis = _patterns(FraudEngine(), uow_factory)

    assert analysis.has_pattern is True
    assert analysis.pattern_type is PatternType.SPEED_VIOLATIONS
    assert analysis.risk_level is RiskLevel.MEDIUM
    assert analysis.speed_violations == 3
    assert analysis.max_speed_kmph == 310.5
    assert "speed_violations pattern" in caplog.text


def test_repeated_outside_area_clock_ins_are_location_anomalies(store, uow_factory):
    spot = (27.7500, 85.3000)
    for n in range(5):
        _day(store, n, reason="Clock-in outside authorized area: Nearest is HQ", at=spot)

    analysis = _patterns(FraudEngine(), uow_factory)

    assert analysis.pattern_type is PatternType.LOCATION_ANOMALIES
    assert analysis.location_anomalies == 5
    assert analysis.repeated_locations == 1


def test_many_suspicious_days_are_high_risk(store, uow_factory):
    for n in range(10):
        _day(store, n, speed=180.0, reason="Impossible travel speed detected (180.00 km/h)")

    assert _patterns(FraudEngine(), uow_factory).risk_level is RiskLevel.HIGH


def test_outlying_clock_in_times_are_time_anomalies(store, uow_factory):
    for n in range(20):
        _day(store, n, hour=9)
    for n in range(20, 22):
        _day(store, n, hour=23)

    analysis = _patterns(FraudEngine(FraudPolicy(pattern_threshold=2)), uow_factory)

    assert analysis.time_anomalies == 2
    assert analysis.pattern_type is PatternType.TIME_ANOMALIES


def test_records_outside_window_are_ignored(store, uow_factory):
    for n in range(3):
        _day(store, 40 + n, speed=150.0, reason="Impossible travel speed detected (150.00 km/h)")

    assert _patterns(FraudEngine(), uow_factory).occurrences == 0
    assert _patterns(FraudEngine(), uow_factory, days=60).has_pattern is True


def test_pattern_window_must_be_positive(uow_factory):
    with pytest.raises(ValidationError):
        _patterns(FraudEngine(), uow_factory, days=0)
