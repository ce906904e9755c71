"""Scripted position provider for tests, demos and fixed kiosks."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable

from pygeofence.exceptions import PositionError
from pygeofence.models.sample import LocationSample
from pygeofence.providers.base import ErrorCallback, SampleCallback, Unsubscribe, now_ms

_logger = logging.getLogger(__name__)

ScriptItem = LocationSample | PositionError


class StaticPositionProvider:
    """Replays a script of samples and errors, one per :meth:`read`.

    When the script runs out the last item is repeated. With ``restamp``
    (the default) samples are re-timestamped at read time, emulating
    hardware that captures a fresh fix on every request.
    """

    def __init__(
        self,
        script: Iterable[ScriptItem],
        *,
        delay_s: float = 0.0,
        restamp: bool = True,
        wall_clock: Callable[[], int] = now_ms,
    ) -> None:
        self._script: deque[ScriptItem] = deque(script)
        if not self._script:
            raise ValueError("script must contain at least one sample or error")
        self._last: ScriptItem = self._script[0]
        self._delay_s = delay_s
        self._restamp = restamp
        self._wall_clock = wall_clock
        self._listeners: list[tuple[SampleCallback, ErrorCallback]] = []
        self.reads = 0
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False
        self._listeners.clear()

    def push(self, *items: ScriptItem) -> None:
        """Append items to the script."""
        self._script.extend(items)

    async def read(self, *, timeout_s: float, max_age_s: float, high_accuracy: bool = True) -> LocationSample:
        self.reads += 1
        item = self._script.popleft() if self._script else self._last
        self._last = item
        await asyncio.sleep(self._delay_s)
        if isinstance(item, PositionError):
            raise item
        if self._restamp:
            item = item.model_copy(update={"captured_at_ms": self._wall_clock()})
        _logger.debug("Scripted read #%d accuracy=%.1fm", self.reads, item.accuracy_meters)
        return item

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Unsubscribe:
        entry = (on_sample, on_error)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, item: ScriptItem) -> None:
        """Deliver *item* to every watch subscriber."""
        for on_sample, on_error in list(self._listeners):
            if isinstance(item, PositionError):
                on_error(item)
            else:
                on_sample(item)
