from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .attendance.executor import TransactionExecutor
from .attendance.locks import InProcessKeyedLock, KeyedLock, MySQLAdvisoryLock
from .attendance.repository import UnitOfWorkFactory
from .attendance.service import AttendanceService
from .attendance.validation import ValidationOrchestrator
from .common.async_runner import AsyncRunner
from .core.constants import DEFAULT_FLAGGED_LIMIT
from .core.exceptions import ValidationError
from .database.connection import DBConfig, DatabaseConnection
from .database.unit_of_work import mysql_unit_of_work_factory
from .fraud.engine import FraudEngine
from .fraud.policy import FraudPolicy
from .geo.mysql_entity_repository import MySQLEntityDirectory
from .geo.resolver import GeospatialResolver
from .reporting.service import AttendanceReportService


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection
    runner: AsyncRunner

    entity_directory: MySQLEntityDirectory
    uow_factory: UnitOfWorkFactory
    lock: KeyedLock

    resolver: GeospatialResolver
    fraud_engine: FraudEngine
    validator: ValidationOrchestrator
    executor: TransactionExecutor

    attendance_service: AttendanceService
    report_service: AttendanceReportService


def _build_lock(backend: str, conn: DatabaseConnection) -> KeyedLock:
    backend = (backend or "memory").lower()
    if backend == "memory":
        return InProcessKeyedLock()
    if backend == "mysql":
        return MySQLAdvisoryLock(conn)
    raise ValidationError(f"Unknown LOCK_BACKEND: {backend!r}. Must be one of: memory, mysql")


def build_container(*, db_config: dict, settings: Optional[Any] = None) -> Container:
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
    )
    conn = DatabaseConnection.get_instance(config)

    lock_timeout = getattr(settings, "LOCK_TIMEOUT_SECONDS", None)
    flagged_limit = int(getattr(settings, "FLAGGED_RECORDS_LIMIT", DEFAULT_FLAGGED_LIMIT))

    entity_directory = MySQLEntityDirectory(conn)
    uow_factory = mysql_unit_of_work_factory(conn)
    lock = _build_lock(getattr(settings, "LOCK_BACKEND", "memory"), conn)

    resolver = GeospatialResolver(entity_directory)
    fraud_engine = FraudEngine(FraudPolicy.from_settings(settings))
    validator = ValidationOrchestrator(resolver, fraud_engine)
    executor = TransactionExecutor(
        uow_factory,
        lock,
        lock_timeout=float(lock_timeout) if lock_timeout else None,
    )

    attendance_service = AttendanceService(
        executor,
        uow_factory,
        validator,
        fraud_engine,
        flagged_limit=flagged_limit,
    )
    report_service = AttendanceReportService(uow_factory)

    return Container(
        conn=conn,
        runner=AsyncRunner(),
        entity_directory=entity_directory,
        uow_factory=uow_factory,
        lock=lock,
        resolver=resolver,
        fraud_engine=fraud_engine,
        validator=validator,
        executor=executor,
        attendance_service=attendance_service,
        report_service=report_service,
    )
