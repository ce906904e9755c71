"""Structural interface for positioning hardware adapters."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from pygeofence.exceptions import PositionError
from pygeofence.models.sample import LocationSample

SampleCallback = Callable[[LocationSample], None]
ErrorCallback = Callable[[PositionError], None]
Unsubscribe = Callable[[], None]


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class PositionProvider(Protocol):
    """Platform positioning API.

    Implementations raise :class:`PositionError` subclasses only. ``read``
    must not return a platform-cached fix captured more than *max_age_s*
    before the call; ``max_age_s=0`` demands a fresh fix.
    """

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def read(self, *, timeout_s: float, max_age_s: float, high_accuracy: bool = True) -> LocationSample:
        ...

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Unsubscribe:
        ...
