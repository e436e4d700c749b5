from __future__ import annotations

import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Protocol

from ..core.enums import OperationClass
from ..database.connection import DatabaseConnection

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """The key stayed held by another operation for longer than the acquire timeout."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock {key!r}")


def lock_key(user_id: str, operation_class: OperationClass) -> str:
    return f"{user_id}:{operation_class.value}"


class KeyedLock(Protocol):
    """Mutual exclusion per string key.

    `hold()` waits for the key (raising LockTimeoutError after `timeout`
    seconds when one is given) and releases it when the block exits,
    whatever the outcome.
    """

    def hold(self, key: str, *, timeout: Optional[float] = None):
        raise NotImplementedError


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0


class InProcessKeyedLock(KeyedLock):
    """asyncio.Lock per key; waiters are served in arrival order.

    A slot lives only while someone holds or waits on it. Single process only:
    two app instances do not see each other's keys (see MySQLAdvisoryLock).
    """

    def __init__(self):
        self._slots: dict[str, _Slot] = {}

    @asynccontextmanager
    async def hold(self, key: str, *, timeout: Optional[float] = None) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = _Slot()
            self._slots[key] = slot
        elif slot.lock.locked():
            logger.debug("Waiting for lock %s (%d ahead)", key, slot.refs)
        slot.refs += 1

        try:
            try:
                if timeout is None:
                    await slot.lock.acquire()
                else:
                    await asyncio.wait_for(slot.lock.acquire(), timeout)
            except asyncio.TimeoutError:
                raise LockTimeoutError(key, timeout) from None

            try:
                yield
            finally:
                slot.lock.release()
        finally:
            slot.refs -= 1
            if slot.refs == 0 and self._slots.get(key) is slot:
                del self._slots[key]

    def active_keys(self) -> list[str]:
        """Keys currently held or waited on."""
        return sorted(self._slots)

    def is_locked(self, key: str) -> bool:
        slot = self._slots.get(key)
        return bool(slot and slot.lock.locked())


class MySQLAdvisoryLock(KeyedLock):
    """Named MySQL lock (GET_LOCK / RELEASE_LOCK) for multi-instance deployments.

    The lock is tied to a dedicated connection that stays open while held.
    MySQL does not promise FIFO hand-off between waiters.
    """

    PREFIX = "geo_att:"
    # MySQL caps lock names at 64 characters.
    MAX_NAME_LENGTH = 64

    def __init__(self, conn_factory: DatabaseConnection, *, default_timeout: Optional[float] = None):
        self._conn_factory = conn_factory
        self._default_timeout = default_timeout

    def lock_name(self, key: str) -> str:
        name = f"{self.PREFIX}{key}"
        if len(name) > self.MAX_NAME_LENGTH:
            name = self.PREFIX + hashlib.sha1(key.encode("utf-8")).hexdigest()
        return name

    @asynccontextmanager
    async def hold(self, key: str, *, timeout: Optional[float] = None) -> AsyncIterator[None]:
        if timeout is None:
            timeout = self._default_timeout
        # negative timeout means wait forever
        wait = -1 if timeout is None else timeout
        name = self.lock_name(key)

        conn = await self._conn_factory.connect()
        try:
            cur = await conn.cursor()
            try:
                await cur.execute("SELECT GET_LOCK(%s, %s)", (name, wait))
                row = await cur.fetchone()
                if not row or row[0] != 1:
                    raise LockTimeoutError(key, wait)
                try:
                    yield
                finally:
                    await cur.execute("SELECT RELEASE_LOCK(%s)", (name,))
                    await cur.fetchone()
            finally:
                await cur.close()
        finally:
            await conn.close()
