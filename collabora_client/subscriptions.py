from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any

from collabora_client.common import now_iso

logger = logging.getLogger(__name__)

Probe = Callable[[Any], Awaitable[Sequence[Any]]]
ItemsCallback = Callable[[list[Any]], Any]
CursorAdvance = Callable[[list[Any], Any], Any]
Action = Callable[[], Awaitable[Any]]


def last_id_cursor(items: list[Any], cursor: Any) -> Any:
    """Advance to the identifier of the last item in the batch."""
    last = items[-1]
    if isinstance(last, Mapping):
        return last.get("id", cursor)
    return getattr(last, "id", cursor)


def timestamp_cursor(items: list[Any], cursor: Any) -> Any:
    """Advance to "now"; the next probe asks for changes since this batch."""
    return now_iso()


class PollingSubscription:
    """Run ``probe(cursor)`` on a fixed interval and deliver non-empty batches.

    The first tick runs as soon as the subscription's task is scheduled, then
    one tick per interval. Ticks never overlap: the next interval starts after
    the previous probe settled. A failed probe is logged and the cursor is
    kept, so the next tick retries from the same position.

    ``stop()`` does not cancel a probe that is already in flight, but its
    result is dropped: ``on_items`` is not called and the cursor stays put.
    """

    def __init__(
        self,
        probe: Probe,
        on_items: ItemsCallback,
        *,
        interval_ms: int,
        cursor: Any = None,
        advance: CursorAdvance = last_id_cursor,
        name: str | None = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        self._probe = probe
        self._on_items = on_items
        self._advance = advance
        self.interval_ms = interval_ms
        self.cursor = cursor
        self.name = name or "poll"
        self.ticks = 0
        self.failures = 0
        self._active = False
        self._stopped = False
        self._in_flight = False
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError(f"{self.name}: subscription already stopped")
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._active = True
        self._task = loop.create_task(self._run(), name=self.name)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._active = False
        task = self._task
        # An in-flight probe finishes on its own; the loop exits after it.
        if task is not None and not self._in_flight and not task.done():
            task.cancel()

    async def join(self) -> None:
        """Wait until the background task (if any) has finished."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    async def _run(self) -> None:
        interval_s = self.interval_ms / 1000.0
        while self._active:
            await self.tick()
            if not self._active:
                return
            await asyncio.sleep(interval_s)

    async def tick(self) -> bool:
        """Run one probe; returns True when a batch was delivered."""
        if not self._active or self._in_flight:
            return False
        self._in_flight = True
        try:
            try:
                items = list(await self._probe(self.cursor))
            except Exception as e:
                self.failures += 1
                logger.warning("%s: probe failed: %s", self.name, e)
                return False
            finally:
                self.ticks += 1

            if not self._active or not items:
                return False

            try:
                result = self._on_items(items)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.failures += 1
                logger.exception("%s: callback failed", self.name)
                return False

            # Stopped while the callback ran: the cursor stays where it was.
            if not self._active:
                return True
            self.cursor = self._advance(items, self.cursor)
            return True
        finally:
            self._in_flight = False


def _discard(items: list[Any]) -> None:
    return None


class HeartbeatSubscription(PollingSubscription):
    """Perform ``action`` every interval regardless of its outcome.

    A polling subscription without a cursor whose probe never yields items;
    failures are logged by the polling loop and never stop the timer.
    """

    def __init__(self, action: Action, *, interval_ms: int, name: str | None = None) -> None:
        async def _beat(cursor: Any) -> list[Any]:
            await action()
            return []

        super().__init__(_beat, _discard, interval_ms=interval_ms, name=name or "heartbeat")


class SubscriptionRegistry:
    """Per-client map of resource key to live subscription.

    At most one subscription is live per key; adding under a taken key stops
    the previous one.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[Hashable, PollingSubscription] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def keys(self) -> list[Hashable]:
        return list(self._subscriptions)

    def get(self, key: Hashable) -> PollingSubscription | None:
        return self._subscriptions.get(key)

    def add(self, key: Hashable, subscription: PollingSubscription) -> Callable[[], None]:
        subscription.start()
        if self._subscriptions.get(key) is not subscription:
            self.stop(key)
        self._subscriptions[key] = subscription
        return lambda: self.release(key, subscription)

    def release(self, key: Hashable, subscription: PollingSubscription) -> None:
        """Stop ``subscription`` and unregister it if it still owns ``key``."""
        subscription.stop()
        if self._subscriptions.get(key) is subscription:
            del self._subscriptions[key]

    def stop(self, key: Hashable) -> bool:
        subscription = self._subscriptions.pop(key, None)
        if subscription is None:
            return False
        subscription.stop()
        return True

    def stop_many(self, keys: Iterable[Hashable]) -> int:
        return sum(1 for key in list(keys) if self.stop(key))

    def stop_all(self) -> int:
        return self.stop_many(self.keys())
