"""OwnTracks position provider over MQTT.

The OwnTracks mobile app publishes ``_type=location`` JSON messages to
``owntracks/<user>/<device>`` and listens for commands on the ``/cmd``
sub-topic. A ``reportLocation`` command makes the phone capture and
publish a fresh fix, which is how :meth:`OwnTracksProvider.read` honours
``max_age_s=0``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, cast

import paho.mqtt.client as mqtt

from pygeofence._redact import redact_for_log
from pygeofence.exceptions import (
    PositionError,
    PositionPermissionDeniedError,
    PositionTimeoutError,
    PositionUnavailableError,
)
from pygeofence.models.sample import LocationSample
from pygeofence.providers._payload import parse_owntracks_payload
from pygeofence.providers.base import ErrorCallback, SampleCallback, Unsubscribe, now_ms

_logger = logging.getLogger(__name__)

#: MQTT CONNACK reason codes meaning bad credentials / not authorized.
_AUTH_REASON_CODES = frozenset({4, 5, 134, 135})

_REPORT_LOCATION_COMMAND = json.dumps({"_type": "cmd", "action": "reportLocation"})


@dataclass(frozen=True)
class OwnTracksSettings:
    """Broker and topic details for one OwnTracks device."""

    host: str
    topic: str
    port: int = 8883
    username: str | None = None
    password: str | None = None
    tls: bool = True
    keepalive: int = 60
    client_id: str = ""

    @property
    def command_topic(self) -> str:
        return f"{self.topic}/cmd"


@dataclass(slots=True)
class _FixWaiter:
    """A pending :meth:`OwnTracksProvider.read` waiting for a fresh enough fix."""

    min_captured_ms: int
    future: asyncio.Future[LocationSample] = field(repr=False)


class OwnTracksProvider:
    """Threaded paho-mqtt provider that hands fixes over to an asyncio loop."""

    def __init__(
        self,
        settings: OwnTracksSettings,
        *,
        wall_clock: Callable[[], int] = now_ms,
        timestamp_tolerance_s: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._wall_clock = wall_clock
        self._tolerance_ms = int(timestamp_tolerance_s * 1000)
        self._logger = logger or _logger
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: mqtt.Client | None = None
        self._running = False
        self._auth_failed = False
        self._last_fix: LocationSample | None = None
        self._waiters: list[_FixWaiter] = []
        self._listeners: list[tuple[SampleCallback, ErrorCallback]] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect to the broker and subscribe to the device topic."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        settings = self._settings
        self._logger.debug(
            "OwnTracks start host=%s port=%s topic=%s credentials=%s",
            settings.host,
            settings.port,
            settings.topic,
            redact_for_log({"username": settings.username, "password": settings.password}),
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id,
        )
        client.enable_logger(self._logger)
        if settings.username is not None:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect

        try:
            await self._loop.run_in_executor(
                None, lambda: client.connect(settings.host, settings.port, keepalive=settings.keepalive)
            )
        except OSError as exc:
            raise PositionUnavailableError(f"Cannot reach MQTT broker {settings.host}:{settings.port}: {exc}") from exc
        client.loop_start()

        self._client = client
        self._running = True
        self._auth_failed = False

    async def stop(self) -> None:
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        for waiter in self._waiters:
            if not waiter.future.done():
                waiter.future.set_exception(PositionUnavailableError("OwnTracks provider stopped"))
        self._waiters.clear()
        self._listeners.clear()

        if client is None:
            return
        loop = self._loop or asyncio.get_running_loop()
        try:
            if was_running:
                client.disconnect()
        finally:
            await loop.run_in_executor(None, client.loop_stop)
            self._logger.debug("OwnTracks network loop stopped")

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _on_connect(self, c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
        if reason_code.value != 0:
            self._logger.warning("OwnTracks connect failed: %s", reason_code)
            if reason_code.value in _AUTH_REASON_CODES:
                self._auth_failed = True
            return
        self._logger.debug("OwnTracks connected, subscribing topic=%s", self._settings.topic)
        c.subscribe(self._settings.topic, qos=1)

    def _on_disconnect(self, _c: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        if self._running:
            self._logger.debug("OwnTracks disconnected: %s", reason_code)

    def _on_message(self, _c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            payload = json.loads(msg.payload.decode("utf-8"))
            if not isinstance(payload, dict):
                return
            sample = parse_owntracks_payload(payload, now_ms=self._wall_clock())
        except (UnicodeDecodeError, json.JSONDecodeError, PositionError):
            self._logger.warning("Dropping undecodable OwnTracks message on %s", msg.topic, exc_info=True)
            return
        if sample is None:
            return
        self._logger.debug("OwnTracks fix %s", redact_for_log(payload))
        loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(self._dispatch, sample)

    # ------------------------------------------------------------------
    # Event-loop side
    # ------------------------------------------------------------------

    def _dispatch(self, sample: LocationSample) -> None:
        if self._last_fix is None or sample.captured_at_ms >= self._last_fix.captured_at_ms:
            self._last_fix = sample
        for waiter in list(self._waiters):
            if not waiter.future.done() and sample.captured_at_ms >= waiter.min_captured_ms:
                waiter.future.set_result(sample)
        for on_sample, _on_error in list(self._listeners):
            on_sample(sample)

    def _check_usable(self) -> None:
        if self._auth_failed:
            raise PositionPermissionDeniedError("MQTT broker rejected the OwnTracks credentials")
        if not self._running or self._client is None:
            raise PositionUnavailableError("OwnTracks provider not connected")

    async def read(self, *, timeout_s: float, max_age_s: float, high_accuracy: bool = True) -> LocationSample:
        self._check_usable()
        # ``tst`` has whole-second resolution; a fix from this second is fresh.
        min_captured_ms = self._wall_clock() - int(max_age_s * 1000) - self._tolerance_ms

        last = self._last_fix
        if max_age_s > 0 and last is not None and last.captured_at_ms >= min_captured_ms:
            return last

        loop = asyncio.get_running_loop()
        waiter = _FixWaiter(min_captured_ms=min_captured_ms, future=loop.create_future())
        self._waiters.append(waiter)
        try:
            assert self._client is not None  # noqa: S101
            self._client.publish(self._settings.command_topic, _REPORT_LOCATION_COMMAND, qos=1)
            return await asyncio.wait_for(waiter.future, timeout=timeout_s)
        except TimeoutError as exc:
            raise PositionTimeoutError(f"OwnTracks device did not report within {timeout_s:.0f}s") from exc
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Unsubscribe:
        self._check_usable()
        entry = (on_sample, on_error)
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe
