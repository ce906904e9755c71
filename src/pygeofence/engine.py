"""High-level async geofence validation engine."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pygeofence.calibration.engine import CalibrationEngine, CalibrationSession, ProgressCallback
from pygeofence.calibration.store import CalibrationStore
from pygeofence.config import GeofenceConfig
from pygeofence.exceptions import PositionError, StoreError
from pygeofence.fetcher import SingleFlightFetcher
from pygeofence.geo import bearing_degrees, compass_direction
from pygeofence.history import LastMatchStore, SiteChangeDetector
from pygeofence.models.calibration import CalibrationOutcome, CalibrationRecord
from pygeofence.models.geofence import Geofence
from pygeofence.models.sample import Coordinate, LocationSample
from pygeofence.models.state import EngineStats
from pygeofence.models.validation import ValidationReason, ValidationResult
from pygeofence.policy import blended_confidence, classify_quality
from pygeofence.providers.base import ErrorCallback, PositionProvider, SampleCallback, now_ms
from pygeofence.resolver import GeofenceResolver, Matched
from pygeofence.source import PositionSource, Subscription
from pygeofence.storage import KeyValueStore, MemoryKeyValueStore

_logger = logging.getLogger(__name__)


class GeofenceEngine:
    """Decides whether the device is at one of a set of registered work sites.

    One instance per application session; it owns the position cache, the
    calibration sessions and the watch subscriptions, and tears all of
    them down in :meth:`close`.

    Usage::

        async with GeofenceEngine(config, provider, store) as engine:
            result = await engine.validate(geofences)
            if not result.accepted:
                show(result.message, result.hint)
    """

    def __init__(
        self,
        config: GeofenceConfig | None,
        provider: PositionProvider,
        store: KeyValueStore | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], int] = now_ms,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or GeofenceConfig()
        self._provider = provider
        backend = store if store is not None else MemoryKeyValueStore()
        self._source = PositionSource(provider, self._config, sleep=sleep, wall_clock=wall_clock)
        self._fetcher = SingleFlightFetcher(self._source, self._config, clock=clock)
        self._calibrations = CalibrationStore(backend, wall_clock=wall_clock)
        self._calibration = CalibrationEngine(
            self._fetcher,
            self._calibrations,
            self._config,
            sleep=sleep,
            wall_clock=wall_clock,
        )
        self._resolver = GeofenceResolver(self._config, wall_clock=wall_clock)
        self._detector = SiteChangeDetector(
            LastMatchStore(backend, self._config.subject_id),
            self._config,
            wall_clock=wall_clock,
        )
        self._started = False

    @property
    def config(self) -> GeofenceConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GeofenceEngine:
        await self._provider.start()
        self._started = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel calibration and watches, then stop the provider."""
        self._calibration.cancel_all()
        self._source.cancel_all()
        self._fetcher.invalidate()
        if self._started:
            self._started = False
            await self._provider.stop()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(
        self,
        geofences: Sequence[Geofence],
        *,
        confidence_threshold: float | None = None,
    ) -> ValidationResult:
        """Validate the current position against *geofences*.

        Never raises for hardware, store or matching failures; the reason
        is in the returned :class:`ValidationResult`.
        """
        config = self._config
        threshold = config.confidence_threshold if confidence_threshold is None else confidence_threshold
        base: dict[str, Any] = {"environment": config.environment}

        active = [g for g in geofences if g.active]
        if not active:
            return ValidationResult(
                accepted=False,
                reason=ValidationReason.NO_GEOFENCES,
                message="No active work sites are configured.",
                **base,
            )

        try:
            sample = await self._fetcher.fetch()
        except PositionError as exc:
            _logger.debug("Validation failed on hardware: %s", exc)
            return ValidationResult(
                accepted=False,
                reason=ValidationReason.HARDWARE,
                message=str(exc),
                error=exc.kind,
                hint=exc.hint,
                **base,
            )

        accuracy = sample.accuracy_meters
        base.update(
            sample=sample,
            quality=classify_quality(accuracy, config),
            needs_calibration=accuracy > config.needs_calibration_accuracy_m,
        )

        if self._resolver.exceeds_ceiling(sample):
            self._fetcher.invalidate()
            base["needs_calibration"] = True
            return ValidationResult(
                accepted=False,
                reason=ValidationReason.LOW_ACCURACY,
                message=(
                    f"GPS accuracy is too low ({accuracy:.0f} m). "
                    "Move to an open area or recalibrate, then try again."
                ),
                confidence=blended_confidence(accuracy, config),
                **base,
            )

        try:
            outcome = await self._resolver.resolve(sample, active, self._calibrations.get)
        except StoreError as exc:
            return self._store_failure(exc, base)

        if not isinstance(outcome, Matched):
            self._fetcher.invalidate()
            message = "No work site found near your position."
            if outcome.closest is not None and outcome.closest_distance_m is not None:
                direction = compass_direction(bearing_degrees(sample, outcome.closest))
                message = (
                    f"You are {outcome.closest_distance_m:.0f} m from {outcome.closest.label} "
                    f"(head {direction}). Move closer to register."
                )
            return ValidationResult(
                accepted=False,
                reason=ValidationReason.NO_MATCH,
                message=message,
                matched_geofence=outcome.closest,
                distance_meters=outcome.closest_distance_m,
                applied_radius_meters=outcome.applied_radius_m,
                calibration_applied=outcome.calibration_applied,
                confidence=blended_confidence(accuracy, config),
                **base,
            )

        confidence = blended_confidence(
            outcome.accuracy_m,
            config,
            distance_m=outcome.distance_m,
            applied_radius_m=outcome.applied_radius_m,
        )
        base.update(
            matched_geofence=outcome.geofence,
            distance_meters=outcome.distance_m,
            applied_radius_meters=outcome.applied_radius_m,
            calibration_applied=outcome.calibration_applied,
            confidence=confidence,
        )

        if confidence < threshold:
            self._fetcher.invalidate()
            return ValidationResult(
                accepted=False,
                reason=ValidationReason.LOW_CONFIDENCE,
                message=f"Location confidence too low ({confidence:.0%}). Try calibrating the GPS.",
                **base,
            )

        try:
            change = await self._detector.detect(outcome.geofence, sample)
            await self._detector.record(outcome.geofence, sample)
        except StoreError as exc:
            return self._store_failure(exc, base)
        message = f"Location confirmed at {outcome.geofence.label}."
        if change.changed:
            # A relocation makes the cached fix suspect for the next caller.
            self._fetcher.invalidate()
            previous = next((g.label for g in geofences if g.id == change.previous_geofence_id), None)
            if change.previous_geofence_id != outcome.geofence.id:
                message += f" You moved from {previous or change.previous_geofence_id} to {outcome.geofence.label}."
            else:
                message += f" Your position moved {change.displacement_m:.0f} m since the last registration."
        return ValidationResult(
            accepted=True,
            reason=ValidationReason.ACCEPTED,
            message=message,
            site_changed=change.changed,
            previous_geofence_id=change.previous_geofence_id,
            **base,
        )

    @staticmethod
    def _store_failure(exc: StoreError, base: dict[str, Any]) -> ValidationResult:
        _logger.warning("Validation failed on store key=%s: %s", exc.key or "-", exc)
        fields = {k: base[k] for k in ("environment", "sample", "quality", "needs_calibration") if k in base}
        return ValidationResult(
            accepted=False,
            reason=ValidationReason.STORE,
            message=f"Saved location data could not be used: {exc}",
            store_key=exc.key or None,
            **fields,
        )

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def start_calibration(
        self,
        geofence_id: str | None,
        target: Coordinate | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> CalibrationSession:
        """Start a calibration session and return its cancellable handle.

        With a *target* (the geofence's true coordinate) the learned offset
        is persisted for *geofence_id*; without one the session only
        produces a calibrated centroid.
        """
        return self._calibration.start(geofence_id, target, on_progress=on_progress)

    async def calibrate(
        self,
        geofence_id: str | None,
        target: Coordinate | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> CalibrationOutcome:
        """Run a calibration session to completion.

        Cancelling the caller cancels the session; nothing is persisted.
        """
        session = self.start_calibration(geofence_id, target, on_progress=on_progress)
        try:
            return await session.result()
        except asyncio.CancelledError:
            session.cancel()
            raise

    async def get_calibration(self, geofence_id: str) -> CalibrationRecord | None:
        return await self._calibrations.get(geofence_id)

    async def reset_calibration(self, geofence_id: str) -> None:
        """Forget the calibration of one geofence."""
        await self._calibrations.delete(geofence_id)

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    def force_refresh(self) -> None:
        """Invalidate the cached fix; the next validation reads the hardware."""
        self._fetcher.invalidate()

    async def current_position(self) -> LocationSample:
        """Current fix through the single-flight cache (raises :class:`PositionError`)."""
        return await self._fetcher.fetch()

    def watch(self, on_sample: SampleCallback, on_error: ErrorCallback | None = None) -> Subscription:
        """Continuous fixes until the returned subscription is cancelled."""
        return self._source.watch(on_sample, on_error)

    async def reset_last_match(self) -> None:
        """Forget the last matched site (e.g. on logout)."""
        await self._detector.reset()

    async def stats(self) -> EngineStats:
        cache_age = self._fetcher.cache_age_s()
        return EngineStats(
            environment=self._config.environment,
            cache_valid=self._fetcher.cache_valid,
            cache_age_s=cache_age,
            calibration_active=self._calibration.active_session is not None,
            active_subscriptions=self._source.active_subscriptions,
            last_match=await self._detector.last_match(),
        )
