"""
Node Work Queue

Leveled delivery of node names to reconciliation workers:

- a key is handed to at most one worker at a time
- adding a key that is already waiting is a no-op
- adding a key while it is being processed redelivers it once ``done`` is called
- ``add_rate_limited`` redelivers after a per-key exponential backoff
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 1000.0


class ShutDown(Exception):
    """Raised by ``get`` once the queue has been shut down."""


class WorkQueue:
    """Coalescing asyncio work queue with per-key backoff."""

    def __init__(
        self,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._ready: asyncio.Queue[str | None] = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._failures: dict[str, int] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty - self._processing)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        """Mark a key as needing reconciliation."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._ready.put_nowait(key)

    async def get(self) -> str:
        """Wait for the next key and mark it as processing."""
        if self._shutting_down and self._ready.empty():
            raise ShutDown()
        key = await self._ready.get()
        if key is None:
            # Wake the next waiter too
            self._ready.put_nowait(None)
            raise ShutDown()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str) -> None:
        """Finish processing a key, redelivering it if it was re-added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._ready.put_nowait(key)

    def when(self, key: str) -> float:
        """Next backoff delay for a key. Doubles per failure up to ``max_delay``."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        try:
            delay = self.base_delay * (2**failures)
        except OverflowError:
            return self.max_delay
        return min(delay, self.max_delay)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        """Reset a key's backoff."""
        self._failures.pop(key, None)

    def add_after(self, key: str, delay: float) -> None:
        """Add a key once ``delay`` seconds have passed."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        existing = self._timers.get(key)
        if existing is not None:
            # Keep the earliest pending delivery
            if existing.when() <= asyncio.get_running_loop().time() + delay:
                return
            existing.cancel()

        self._timers[key] = asyncio.get_running_loop().call_later(delay, self._fire, key)

    def _fire(self, key: str) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: str) -> float:
        """Add a key after its backoff delay. Returns the delay used."""
        delay = self.when(key)
        self.add_after(key, delay)
        return delay

    def shut_down(self) -> None:
        """Stop accepting keys and release all waiting workers."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._ready.put_nowait(None)
