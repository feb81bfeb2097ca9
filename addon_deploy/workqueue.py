"""A rate limited work queue of string keys.

The queue hands out keys to workers with these guarantees:

- A key added several times before it is picked up is handed out once.
- A key is never handed out while a worker is still processing it. If it is
  added again in the meantime, it is handed out again after `done`.
- Failed keys can be retried with a per key exponential backoff.
"""

import asyncio
from collections import deque
import logging

from .exceptions import QueueShutDownError

__all__ = [
    "RateLimitingQueue",
]

_LOGGER = logging.getLogger(__name__)


class RateLimitingQueue:
    """Per key serialized work queue with exponential retry backoff."""

    def __init__(
        self, base_delay: float = 0.005, max_delay: float = 1000.0
    ) -> None:
        """Initialize the queue.

        Args:
            base_delay: Delay before the first retry of a key.
            max_delay: Upper bound of the retry delay.
        """
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._failures: dict[str, int] = {}
        self._delayed: dict[str, asyncio.TimerHandle] = {}
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._idle_waiters: list[asyncio.Future[None]] = []
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        """Mark the key as needing processing."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        _LOGGER.debug("Enqueued %s", key)
        self._queue.append(key)
        self._wake_one()

    async def get(self) -> str:
        """Wait for the next key and mark it as being processed.

        Raises:
            QueueShutDownError: When the queue was shut down.
        """
        while not self._queue:
            if self._shutting_down:
                raise QueueShutDownError("queue is shut down")
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                # Pass the wake up on to another worker
                if waiter.done() and not waiter.cancelled() and self._queue:
                    self._wake_one()
                raise
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
        key = self._queue.popleft()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str) -> None:
        """Mark the key as no longer being processed."""
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.append(key)
            self._wake_one()
        self._check_idle()

    def add_after(self, key: str, delay: float) -> None:
        """Add the key once the delay has passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        if (handle := self._delayed.get(key)) is not None:
            if handle.when() <= asyncio.get_running_loop().time() + delay:
                return
            handle.cancel()
        self._delayed[key] = asyncio.get_running_loop().call_later(
            delay, self._fire_delayed, key
        )

    def _fire_delayed(self, key: str) -> None:
        self._delayed.pop(key, None)
        self.add(key)
        self._check_idle()

    def when(self, key: str) -> float:
        """Return the backoff delay for the next retry of the key."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        try:
            delay = self._base_delay * (2**failures)
        except OverflowError:
            return self._max_delay
        return min(delay, self._max_delay)

    def add_rate_limited(self, key: str) -> None:
        """Add the key after its backoff delay, growing the delay each time."""
        if self._shutting_down:
            return
        delay = self.when(key)
        _LOGGER.debug("Requeue %s in %.3fs", key, delay)
        self.add_after(key, delay)

    def forget(self, key: str) -> None:
        """Reset the backoff of the key."""
        self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    def is_idle(self) -> bool:
        """Return True when no key is queued, delayed or being processed."""
        return not self._queue and not self._processing and not self._delayed

    async def wait_idle(self) -> None:
        """Wait until no key is queued, delayed or being processed."""
        if self.is_idle():
            return
        waiter = asyncio.get_running_loop().create_future()
        self._idle_waiters.append(waiter)
        await waiter

    def shut_down(self) -> None:
        """Stop accepting keys and release the workers waiting for one."""
        _LOGGER.debug("Shutting down work queue")
        self._shutting_down = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        self._queue.clear()
        self._dirty.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
        self._check_idle()

    def _wake_one(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    def _check_idle(self) -> None:
        if not self.is_idle():
            return
        waiters, self._idle_waiters = self._idle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
