"""Bounded GPS calibration sessions.

A session samples the hardware while the operator stands at a geofence,
trims outliers, computes an inverse-square accuracy-weighted centroid and,
given the geofence's true coordinate, persists the offset between the two.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from pygeofence.calibration.store import CalibrationStore
from pygeofence.config import GeofenceConfig
from pygeofence.exceptions import CalibrationAbortedError, PositionError, StoreError
from pygeofence.fetcher import SingleFlightFetcher
from pygeofence.models.calibration import (
    CalibrationOutcome,
    CalibrationPhase,
    CalibrationProgress,
    CalibrationRecord,
    CalibrationSessionState,
)
from pygeofence.models.sample import Coordinate, LocationSample
from pygeofence.providers.base import now_ms

_logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CalibrationProgress], None]


def select_samples(samples: Sequence[LocationSample], config: GeofenceConfig) -> list[LocationSample]:
    """Best samples by accuracy, after trimming the worst as outliers.

    With more than ``calibration_outlier_min_samples`` samples the
    ``calibration_outlier_drop`` worst are discarded; of the rest at most
    ``calibration_keep_best`` are kept.
    """
    ranked = sorted(samples, key=lambda s: s.accuracy_meters)
    if len(ranked) > config.calibration_outlier_min_samples:
        ranked = ranked[: len(ranked) - config.calibration_outlier_drop]
    return ranked[: config.calibration_keep_best]


def weighted_centroid(samples: Sequence[LocationSample]) -> Coordinate:
    """Weighted mean position with weight ``1 / accuracy**2`` per sample."""
    if not samples:
        raise ValueError("weighted_centroid needs at least one sample")
    # Floor keeps a reported 0 m accuracy from producing an infinite weight.
    weights = [1.0 / max(s.accuracy_meters, 0.1) ** 2 for s in samples]
    total = sum(weights)
    latitude = sum(s.latitude * w for s, w in zip(samples, weights, strict=True)) / total
    longitude = sum(s.longitude * w for s, w in zip(samples, weights, strict=True)) / total
    return Coordinate(latitude=latitude, longitude=longitude)


def _retrieve_exception(task: asyncio.Task[CalibrationOutcome]) -> None:
    if not task.cancelled():
        # Mark the exception retrieved; result() reports it to whoever awaits.
        task.exception()


class CalibrationSession:
    """Handle for one running calibration.

    Usage::

        session = engine.start_calibration("site-a", target=site_a.coordinate)
        outcome = await session.result()   # or session.cancel()
    """

    def __init__(
        self,
        *,
        geofence_id: str | None,
        target: Coordinate | None,
        config: GeofenceConfig,
        fetcher: SingleFlightFetcher,
        store: CalibrationStore,
        on_progress: ProgressCallback | None,
        sleep: Callable[[float], Awaitable[None]],
        wall_clock: Callable[[], int],
    ) -> None:
        self.geofence_id = geofence_id
        self.target = target
        self._config = config
        self._fetcher = fetcher
        self._store = store
        self._on_progress = on_progress
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._state = CalibrationSessionState(samples_target=config.calibration_samples)
        self._task: asyncio.Task[CalibrationOutcome] | None = None

    @property
    def state(self) -> CalibrationSessionState:
        return self._state

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(_retrieve_exception)

    def cancel(self) -> None:
        """Abort the session; partial samples are discarded, nothing is persisted."""
        if self._task is not None and not self._task.done():
            _logger.debug("Calibration cancelled geofence=%s", self.geofence_id)
            self._task.cancel()

    async def result(self) -> CalibrationOutcome:
        """Wait for the session and return its outcome (never raises for hardware or store errors)."""
        assert self._task is not None  # noqa: S101
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
            return CalibrationOutcome(
                success=False,
                geofence_id=self.geofence_id,
                cancelled=True,
                message="Calibration cancelled; no data was saved.",
            )
        except CalibrationAbortedError as exc:
            cause = exc.cause
            return CalibrationOutcome(
                success=False,
                geofence_id=self.geofence_id,
                error=cause.kind if cause is not None else None,
                message=cause.hint if cause is not None else str(exc),
            )
        except StoreError as exc:
            _logger.warning("Calibration could not use the store key=%s: %s", exc.key or "-", exc)
            return CalibrationOutcome(
                success=False,
                geofence_id=self.geofence_id,
                store_error=True,
                store_key=exc.key or None,
                message=f"Calibration could not be saved: {exc}",
            )

    def _update(self, **changes: object) -> None:
        self._state = self._state.model_copy(update=changes)

    async def _run(self) -> CalibrationOutcome:
        async with self._fetcher.exclusive():
            try:
                samples = await self._collect()
            except BaseException:
                self._update(phase=CalibrationPhase.FAILED)
                raise
            self._update(phase=CalibrationPhase.COMPUTING)
            try:
                outcome = await self._compute(samples)
            except BaseException:
                self._update(phase=CalibrationPhase.FAILED)
                raise
            self._update(phase=CalibrationPhase.DONE)
            return outcome

    async def _collect(self) -> list[LocationSample]:
        target_count = self._config.calibration_samples
        self._update(phase=CalibrationPhase.SAMPLING)
        _logger.debug("Calibration sampling geofence=%s samples=%d", self.geofence_id, target_count)

        samples: list[LocationSample] = []
        for index in range(target_count):
            try:
                sample = await self._fetcher.read_fresh()
            except PositionError as exc:
                _logger.debug("Calibration aborted after %d samples: %s", len(samples), exc)
                raise CalibrationAbortedError(
                    f"Position read failed during calibration: {exc}",
                    cause=exc,
                ) from exc

            samples.append(sample)
            best = min(s.accuracy_meters for s in samples)
            self._update(samples_collected=len(samples), best_accuracy_so_far=best)
            self._report(
                CalibrationProgress(
                    samples_collected=len(samples),
                    samples_target=target_count,
                    last_accuracy_meters=sample.accuracy_meters,
                    best_accuracy_meters=best,
                )
            )
            if index < target_count - 1:
                await self._sleep(self._config.calibration_interval_s)
        return samples

    def _report(self, progress: CalibrationProgress) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(progress)
        except Exception:
            _logger.debug("on_progress callback failed", exc_info=True)

    async def _compute(self, samples: list[LocationSample]) -> CalibrationOutcome:
        selected = select_samples(samples, self._config)
        centroid = weighted_centroid(selected)
        best_accuracy = min(s.accuracy_meters for s in samples)

        if self.target is None or self.geofence_id is None:
            return CalibrationOutcome(
                success=True,
                geofence_id=self.geofence_id,
                centroid=centroid,
                samples_used=len(selected),
                best_accuracy_meters=best_accuracy,
                message=f"Calibrated fix with {best_accuracy:.0f} m accuracy.",
            )

        previous = await self._store.get(self.geofence_id)
        created = self._wall_clock()
        record = CalibrationRecord(
            geofence_id=self.geofence_id,
            offset_latitude=self.target.latitude - centroid.latitude,
            offset_longitude=self.target.longitude - centroid.longitude,
            achieved_accuracy_meters=best_accuracy,
            created_at_ms=created,
            expires_at_ms=created + int(self._config.calibration_validity_s * 1000),
            sessions_used=previous.sessions_used + 1 if previous is not None else 1,
        )
        await self._store.put(record)
        return CalibrationOutcome(
            success=True,
            geofence_id=self.geofence_id,
            centroid=centroid,
            record=record,
            samples_used=len(selected),
            best_accuracy_meters=best_accuracy,
            message=f"GPS calibrated for {self.geofence_id} with {best_accuracy:.0f} m accuracy.",
        )


class CalibrationEngine:
    """Starts calibration sessions; at most one samples the hardware at a time."""

    def __init__(
        self,
        fetcher: SingleFlightFetcher,
        store: CalibrationStore,
        config: GeofenceConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], int] = now_ms,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._config = config
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._sessions: list[CalibrationSession] = []

    @property
    def active_session(self) -> CalibrationSession | None:
        """The session currently sampling or computing, if any."""
        for session in self._sessions:
            if session.state.in_progress:
                return session
        return None

    def start(
        self,
        geofence_id: str | None,
        target: Coordinate | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> CalibrationSession:
        """Start a session; it queues behind any session already running."""
        session = CalibrationSession(
            geofence_id=geofence_id,
            target=target.coordinate if target is not None else None,
            config=self._config,
            fetcher=self._fetcher,
            store=self._store,
            on_progress=on_progress,
            sleep=self._sleep,
            wall_clock=self._wall_clock,
        )
        session._start()  # noqa: SLF001
        self._sessions = [s for s in self._sessions if not s.done]
        self._sessions.append(session)
        return session

    def cancel_all(self) -> None:
        for session in self._sessions:
            session.cancel()
        self._sessions.clear()
