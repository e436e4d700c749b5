from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from src.geo_attendance.geo_attendance.geo.mysql_entity_repository import MySQLEntityDirectory


class FakeCursor:
    def __init__(self, results):
        # one list of rows per execute() call
        self._results = list(results)
        self._rows = []

    async def execute(self, sql, params=None):
        self._rows = self._results.pop(0) if self._results else []

    async def fetchone(self):
        return self._rows[0] if self._rows else None

    async def fetchall(self):
        return self._rows

    async def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor

    async def cursor(self, dictionary=True):
        return self._cursor

    async def commit(self):
        pass

    async def rollback(self):
        pass

    async def close(self):
        pass


class FakeConnectionFactory:
    def __init__(self, *results):
        self._cursor = FakeCursor(results)

    async def connect(self):
        return FakeConnection(self._cursor)


def _row(entity_id, radius):
    return {
        "entity_id": entity_id,
        "name": entity_id.upper(),
        "latitude": Decimal("27.71720000"),
        "longitude": Decimal("85.32400000"),
        "radius_meters": radius,
    }


def test_entities_with_radius_out_of_range_are_skipped(caplog):
    directory = MySQLEntityDirectory(
        FakeConnectionFactory([_row("hq", 100), _row("tiny", 5), _row("huge", 5000), _row("edge", 1000)])
    )

    with caplog.at_level(logging.WARNING, logger="src.geo_attendance.geo_attendance.geo.mysql_entity_repository"):
        entities = asyncio.run(directory.list_accessible_entities("u1"))

    assert [e.entity_id for e in entities] == ["hq", "edge"]
    assert entities[0].latitude == 27.7172
    assert "Skipping entity tiny" in caplog.text
    assert "Skipping entity huge" in caplog.text


def test_department_assignments_used_when_user_has_none():
    directory = MySQLEntityDirectory(FakeConnectionFactory([], [_row("dept-site", 10)]))

    entities = asyncio.run(directory.list_accessible_entities("u1"))

    assert [e.entity_id for e in entities] == ["dept-site"]


def test_get_by_id_hides_entity_with_invalid_radius():
    directory = MySQLEntityDirectory(FakeConnectionFactory([_row("bad", 0)]))

    assert asyncio.run(directory.get_by_id("bad")) is None
