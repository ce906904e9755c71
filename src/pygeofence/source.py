"""Uniform position source on top of a platform provider.

Owns:
- timeout bounding of every hardware read
- the retry-until-accurate policy of :meth:`PositionSource.get_once`
- rejection of platform-cached fixes older than the requested max age
- normalization of stray platform exceptions into :class:`PositionError`
- watch subscriptions with explicit cancellation handles
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pygeofence.config import GeofenceConfig
from pygeofence.exceptions import (
    PositionError,
    PositionErrorKind,
    PositionPermissionDeniedError,
    PositionTimeoutError,
    PositionUnavailableError,
    PositionUnsupportedError,
)
from pygeofence.models.sample import LocationSample
from pygeofence.providers.base import ErrorCallback, PositionProvider, SampleCallback, Unsubscribe, now_ms

_logger = logging.getLogger(__name__)

#: Kinds that another attempt cannot fix; fail fast instead of retrying.
_NON_RETRYABLE = frozenset({PositionErrorKind.PERMISSION_DENIED, PositionErrorKind.UNSUPPORTED})


def normalize_position_error(exc: BaseException) -> PositionError:
    """Map an exception raised by a provider onto the :class:`PositionError` taxonomy.

    Raises *exc* again when it is not a positioning failure at all.
    """
    if isinstance(exc, PositionError):
        return exc
    if isinstance(exc, TimeoutError):
        return PositionTimeoutError(str(exc) or "")
    if isinstance(exc, PermissionError):
        return PositionPermissionDeniedError(str(exc))
    if isinstance(exc, NotImplementedError):
        return PositionUnsupportedError(str(exc))
    if isinstance(exc, OSError):
        return PositionUnavailableError(str(exc))
    raise exc


class Subscription:
    """Handle for a continuous watch; call :meth:`cancel` to release the hardware."""

    def __init__(self, unsubscribe: Unsubscribe, *, on_cancel: Callable[[Subscription], None] | None = None) -> None:
        self._unsubscribe: Unsubscribe | None = unsubscribe
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def cancel(self) -> None:
        """Stop receiving samples. Safe to call more than once."""
        unsubscribe = self._unsubscribe
        if unsubscribe is None:
            return
        self._unsubscribe = None
        try:
            unsubscribe()
        finally:
            if self._on_cancel is not None:
                self._on_cancel(self)


class PositionSource:
    """Timeout-bounded single-shot reads and watch subscriptions."""

    def __init__(
        self,
        provider: PositionProvider,
        config: GeofenceConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], int] = now_ms,
    ) -> None:
        self._provider = provider
        self._config = config
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._subscriptions: set[Subscription] = set()

    @property
    def provider(self) -> PositionProvider:
        return self._provider

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    async def _read(self, timeout_s: float, max_age_s: float) -> LocationSample:
        started_ms = self._wall_clock()
        try:
            sample = await asyncio.wait_for(
                self._provider.read(timeout_s=timeout_s, max_age_s=max_age_s, high_accuracy=True),
                timeout=timeout_s,
            )
        except PositionError:
            raise
        except TimeoutError as exc:
            raise PositionTimeoutError(f"No position fix within {timeout_s:.0f}s") from exc
        except Exception as exc:
            raise normalize_position_error(exc) from exc

        oldest_allowed_ms = started_ms - int((max_age_s + self._config.timestamp_tolerance_s) * 1000)
        if sample.captured_at_ms < oldest_allowed_ms:
            raise PositionUnavailableError(
                f"Platform returned a fix {started_ms - sample.captured_at_ms}ms old (max age {max_age_s:.0f}s)"
            )
        return sample

    async def get_once(self, *, timeout_s: float | None = None, max_age_s: float | None = None) -> LocationSample:
        """Read one fix, retrying while accuracy is poor.

        Up to ``retry_attempts`` reads are made. A fix at or below
        ``retry_accept_accuracy_m`` is returned immediately; otherwise the
        best fix seen is returned after the last attempt. When no attempt
        produced a fix, the last :class:`PositionError` is raised.
        """
        config = self._config
        timeout = config.position_timeout_s if timeout_s is None else timeout_s
        max_age = config.max_age_s if max_age_s is None else max_age_s

        best: LocationSample | None = None
        last_error: PositionError | None = None
        for attempt in range(1, config.retry_attempts + 1):
            try:
                sample = await self._read(timeout, max_age)
            except PositionError as exc:
                last_error = exc
                _logger.debug("Position attempt %d/%d failed: %s", attempt, config.retry_attempts, exc)
                if exc.kind in _NON_RETRYABLE:
                    raise
            else:
                _logger.debug(
                    "Position attempt %d/%d accuracy=%.1fm", attempt, config.retry_attempts, sample.accuracy_meters
                )
                if best is None or sample.accuracy_meters < best.accuracy_meters:
                    best = sample
                if sample.accuracy_meters <= config.retry_accept_accuracy_m:
                    return sample

            if attempt < config.retry_attempts:
                await self._sleep(config.retry_backoff_s)

        if best is not None:
            return best
        assert last_error is not None  # noqa: S101
        raise last_error

    def watch(self, on_sample: SampleCallback, on_error: ErrorCallback | None = None) -> Subscription:
        """Subscribe to continuous fixes until the returned handle is cancelled."""

        def _deliver(sample: LocationSample) -> None:
            try:
                on_sample(sample)
            except Exception:
                _logger.debug("watch on_sample callback failed", exc_info=True)

        def _fail(error: PositionError) -> None:
            if on_error is None:
                _logger.debug("Unhandled watch error: %s", error)
                return
            try:
                on_error(error)
            except Exception:
                _logger.debug("watch on_error callback failed", exc_info=True)

        unsubscribe = self._provider.subscribe(_deliver, _fail)
        subscription = Subscription(unsubscribe, on_cancel=self._subscriptions.discard)
        self._subscriptions.add(subscription)
        return subscription

    def cancel_all(self) -> None:
        """Cancel every outstanding watch subscription."""
        for subscription in list(self._subscriptions):
            subscription.cancel()
