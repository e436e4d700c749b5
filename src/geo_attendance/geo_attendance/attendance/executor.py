from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.enums import OperationClass
from ..core.exceptions import ConcurrentOperationError
from .locks import InProcessKeyedLock, KeyedLock, LockTimeoutError, lock_key
from .repository import UnitOfWork, UnitOfWorkFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionExecutor:
    """Runs one attendance state transition at a time per (user, operation class).

    Sequence per call: take the key, open a unit of work, run `work(uow)`,
    commit. Any failure rolls back and propagates unchanged. The key is
    released in every case. This is the only path that writes attendance rows.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        lock: Optional[KeyedLock] = None,
        *,
        lock_timeout: Optional[float] = None,
    ):
        self._uow_factory = uow_factory
        self._lock = lock or InProcessKeyedLock()
        self._lock_timeout = lock_timeout

    @property
    def lock(self) -> KeyedLock:
        return self._lock

    async def execute(
        self,
        user_id: str,
        operation_class: OperationClass,
        work: Callable[[UnitOfWork], Awaitable[T]],
    ) -> T:
        key = lock_key(user_id, operation_class)
        try:
            async with self._lock.hold(key, timeout=self._lock_timeout):
                return await self._run(key, work)
        except LockTimeoutError as e:
            logger.warning("Lock contention on %s: %s", key, e)
            raise ConcurrentOperationError(user_id, operation_class.value) from e

    async def _run(self, key: str, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        uow = self._uow_factory()
        try:
            await uow.begin()
            result = await work(uow)
            await uow.commit()
            logger.debug("Committed %s", key)
            return result
        except BaseException as e:
            try:
                await uow.rollback()
            except Exception:
                logger.exception("Rollback failed for %s", key)
            logger.warning("Rolled back %s: %s: %s", key, type(e).__name__, e)
            raise
        finally:
            await uow.close()
