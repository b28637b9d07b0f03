import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from relaykit.config import DEFAULT_LOCK_TIMEOUT
from relaykit.errors import LockTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _KeyLock:
    __slots__ = ("held", "waiters")

    def __init__(self) -> None:
        self.held = False
        self.waiters: deque[asyncio.Future[None]] = deque()


class LockManager:
    """Per-resource exclusive critical sections with FIFO hand-off.

    Ownership passes directly from the releasing holder to the oldest live
    waiter, so waiters for one resource run strictly in arrival order and a new
    arrival can never jump the queue. Resources are independent of each other.

    Bookkeeping for a resource is dropped as soon as it has neither a holder nor
    waiters, so the manager does not grow with the number of chats ever seen.
    """

    def __init__(self, default_timeout: float | None = DEFAULT_LOCK_TIMEOUT) -> None:
        self.default_timeout = default_timeout
        self._locks: dict[str, _KeyLock] = {}

    def is_locked(self, resource_id: str) -> bool:
        entry = self._locks.get(resource_id)
        return entry is not None and entry.held

    def waiter_count(self, resource_id: str) -> int:
        entry = self._locks.get(resource_id)
        if entry is None:
            return 0
        return sum(1 for fut in entry.waiters if not fut.done())

    async def acquire(self, resource_id: str, timeout: float | None = None) -> None:
        """Wait for exclusive ownership of ``resource_id``.

        Raises:
            LockTimeoutError: If ownership was not obtained within ``timeout``
                seconds. The caller holds nothing afterwards.
        """
        if timeout is None:
            timeout = self.default_timeout

        entry = self._locks.get(resource_id)
        if entry is None:
            entry = self._locks[resource_id] = _KeyLock()

        if not entry.held and not entry.waiters:
            entry.held = True
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry.waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter, timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError) as exc:
            if waiter.done() and not waiter.cancelled():
                # Ownership was handed over just as we gave up: pass it on.
                self.release(resource_id)
            else:
                try:
                    entry.waiters.remove(waiter)
                except ValueError:
                    pass
                self._drop_if_idle(resource_id)
            if isinstance(exc, asyncio.CancelledError):
                raise
            logger.warning(f"Lock wait on {resource_id!r} timed out after {timeout}s")
            raise LockTimeoutError(resource_id, timeout) from None

    def release(self, resource_id: str) -> None:
        entry = self._locks.get(resource_id)
        if entry is None or not entry.held:
            raise RuntimeError(f"Lock on {resource_id!r} released while not held")

        while entry.waiters:
            waiter = entry.waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

        entry.held = False
        self._drop_if_idle(resource_id)

    def _drop_if_idle(self, resource_id: str) -> None:
        entry = self._locks.get(resource_id)
        if entry is not None and not entry.held and not entry.waiters:
            del self._locks[resource_id]

    @asynccontextmanager
    async def lock(self, resource_id: str, timeout: float | None = None) -> AsyncIterator[None]:
        """``async with`` form of the critical section.

        Unlike :meth:`with_lock`, the body is not protected from cancellation.
        """
        await self.acquire(resource_id, timeout)
        try:
            yield
        finally:
            self.release(resource_id)

    async def with_lock(
        self,
        resource_id: str,
        body: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Run ``body`` while holding the lock for ``resource_id``.

        ``body`` is never invoked if the lock cannot be acquired in time. Once
        it starts it runs to completion even if the caller is cancelled; the
        cancellation is re-raised after the lock is released.
        """
        await self.acquire(resource_id, timeout)
        try:
            task = asyncio.ensure_future(body())
            return await _run_to_completion(task)
        finally:
            self.release(resource_id)


async def _run_to_completion(task: "asyncio.Future[T]") -> T:
    cancelled = False
    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            cancelled = True
            if task.done():
                break
    if cancelled:
        # The body finished; surface its failure first, otherwise the cancellation.
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]
        raise asyncio.CancelledError()
    return task.result()
