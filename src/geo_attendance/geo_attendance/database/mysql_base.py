from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from .connection import DatabaseConnection


@asynccontextmanager
async def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True) -> AsyncIterator[tuple]:
    """Connection + cursor for a single read (or autocommitted write) outside a unit of work."""
    conn = await conn_factory.connect()
    try:
        cur = await conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            await conn.commit()
        finally:
            await cur.close()
    except Exception:
        await conn.rollback()
        raise
    finally:
        await conn.close()


async def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = await cur.fetchone()
    return row if row else None


async def fetchall(cur) -> List[Dict[str, Any]]:
    rows = await cur.fetchall()
    return list(rows or [])


def to_float(value: Any) -> Optional[float]:
    """DECIMAL columns come back as Decimal."""
    if value is None:
        return None
    return float(value)


def to_bool(value: Any) -> Optional[bool]:
    """TINYINT(1) columns come back as 0/1."""
    if value is None:
        return None
    return bool(value)
