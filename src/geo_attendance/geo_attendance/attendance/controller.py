from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from ..common.datetime_utils import parse_iso_date
from ..core.exceptions import (
    AccessDeniedError,
    ConcurrentOperationError,
    ConflictError,
    DomainError,
    GeospatialError,
    NotFoundError,
    ValidationError,
)
from ..container import Container

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"

# Most specific first: GeospatialError is a ValidationError.
_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (GeospatialError, 422),
    (ValidationError, 400),
    (AccessDeniedError, 403),
    (NotFoundError, 404),
    (ConcurrentOperationError, 409),
    (ConflictError, 409),
]


def status_for(error: DomainError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(error, cls):
            return status
    return 400


def to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


def register(app: Flask, container: Container) -> None:
    run = container.runner.run
    service = container.attendance_service

    class _Unauthorized(Exception):
        pass

    def current_user_id() -> str:
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            raise _Unauthorized()
        return user_id

    def body() -> dict:
        return request.get_json(silent=True) or {}

    def coordinates(data: dict) -> tuple[Any, Any]:
        for name in ("latitude", "longitude"):
            if data.get(name) is None:
                raise ValidationError(f"{name} is required")
        return data["latitude"], data["longitude"]

    def date_range() -> tuple[date, date]:
        today = date.today()
        try:
            start = parse_iso_date(request.args["start"]) if request.args.get("start") else today.replace(day=1)
            end = parse_iso_date(request.args["end"]) if request.args.get("end") else today
        except ValueError:
            raise ValidationError("Dates must use YYYY-MM-DD") from None
        return start, end

    def ok(data: Any, status: int = 200):
        return jsonify({"success": True, "data": to_jsonable(data)}), status

    @app.errorhandler(_Unauthorized)
    def handle_unauthorized(_e):
        return jsonify({"success": False, "error": "Unauthorized", "message": f"{USER_HEADER} header is required"}), 401

    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        return jsonify({"success": False, "error": type(e).__name__, "message": str(e)}), status_for(e)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        # the executor has already rolled back by the time we get here
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "InternalError", "message": "Internal server error"}), 500

    # ---------- transitions ----------
    @app.route("/api/attendance/clock-in", methods=["POST"], endpoint="clock_in")
    def clock_in():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        record = run(
            service.clock_in(
                user_id,
                latitude=lat,
                longitude=lon,
                notes=data.get("notes"),
                work_location=data.get("work_location") or "OFFICE",
                remote_location=data.get("remote_location"),
            )
        )
        return ok(record, 201)

    @app.route("/api/attendance/clock-out", methods=["POST"], endpoint="clock_out")
    def clock_out():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        record = run(service.clock_out(user_id, latitude=lat, longitude=lon, notes=data.get("notes")))
        return ok(record)

    @app.route("/api/attendance/sessions/check-in", methods=["POST"], endpoint="session_check_in")
    def session_check_in():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        session = run(
            service.session_check_in(
                user_id,
                latitude=lat,
                longitude=lon,
                session_type=data.get("session_type") or "work",
                notes=data.get("notes"),
            )
        )
        return ok(session, 201)

    @app.route("/api/attendance/sessions/check-out", methods=["POST"], endpoint="session_check_out")
    def session_check_out():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        session = run(service.session_check_out(user_id, latitude=lat, longitude=lon, notes=data.get("notes")))
        return ok(session)

    @app.route("/api/attendance/locations/check-in", methods=["POST"], endpoint="location_check_in")
    def location_check_in():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        log = run(
            service.location_check_in(
                user_id,
                entity_id=str(data.get("entity_id") or ""),
                latitude=lat,
                longitude=lon,
                purpose=data.get("purpose"),
                notes=data.get("notes"),
            )
        )
        return ok(log, 201)

    @app.route("/api/attendance/locations/check-out", methods=["POST"], endpoint="location_check_out")
    def location_check_out():
        user_id = current_user_id()
        data = body()
        lat, lon = coordinates(data)
        log = run(service.location_check_out(user_id, latitude=lat, longitude=lon, notes=data.get("notes")))
        return ok(log)

    # ---------- queries ----------
    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    def attendance_today():
        return ok(run(service.get_today_attendance(current_user_id())))

    @app.route("/api/attendance/date/<work_date>", methods=["GET"], endpoint="attendance_by_date")
    def attendance_by_date(work_date: str):
        try:
            day = parse_iso_date(work_date)
        except ValueError:
            raise ValidationError("Dates must use YYYY-MM-DD") from None
        return ok(run(service.get_attendance_by_date(current_user_id(), day)))

    @app.route("/api/attendance/sessions/current", methods=["GET"], endpoint="current_session")
    def current_session():
        return ok(run(service.get_current_session(current_user_id())))

    @app.route("/api/attendance/locations/current", methods=["GET"], endpoint="current_location")
    def current_location():
        return ok(run(service.get_current_location_log(current_user_id())))

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    def attendance_history():
        start, end = date_range()
        return ok(run(service.get_history(current_user_id(), start, end)))

    @app.route("/api/attendance/locations/history", methods=["GET"], endpoint="location_history")
    def location_history():
        start, end = date_range()
        return ok(run(service.get_location_history(current_user_id(), start, end)))

    @app.route("/api/attendance/flagged", methods=["GET"], endpoint="flagged_records")
    def flagged_records():
        current_user_id()
        limit = request.args.get("limit", type=int)
        return ok(run(service.get_flagged_records(limit)))

    @app.route("/api/attendance/report", methods=["GET"], endpoint="attendance_report")
    def attendance_report():
        start, end = date_range()
        return ok(run(container.report_service.build_summary(current_user_id(), start, end)))

    @app.route("/api/attendance/patterns", methods=["GET"], endpoint="attendance_patterns")
    def attendance_patterns():
        user_id = current_user_id()
        days = request.args.get("days", type=int)
        return ok(run(service.get_user_patterns(user_id, days)))
