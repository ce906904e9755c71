from __future__ import annotations

import asyncio
import json
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from pygeofence.exceptions import PositionPermissionDeniedError, PositionTimeoutError, PositionUnavailableError
from pygeofence.models.sample import LocationSample
from pygeofence.providers.owntracks import OwnTracksProvider, OwnTracksSettings

NOW_MS = 1_700_000_000_000
SETTINGS = OwnTracksSettings(host="broker.example.com", topic="owntracks/alice/phone")


class _FakeClient:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []
        self.disconnected = False

    def publish(self, topic: str, payload: str, qos: int = 0) -> None:
        self.published.append((topic, payload))

    def disconnect(self) -> None:
        self.disconnected = True

    def loop_stop(self) -> None:
        pass


def _message(payload: dict[str, Any] | bytes) -> mqtt.MQTTMessage:
    msg = mqtt.MQTTMessage(topic=SETTINGS.topic.encode())
    msg.payload = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return msg


def _location(tst: int, acc: float = 8.0) -> dict[str, Any]:
    return {"_type": "location", "lat": 52.52, "lon": 13.405, "acc": acc, "tst": tst}


def _connected_provider(now: int = NOW_MS) -> tuple[OwnTracksProvider, _FakeClient]:
    provider = OwnTracksProvider(SETTINGS, wall_clock=lambda: now)
    client = _FakeClient()
    # Bypass the broker connection; read() only needs a client and a loop.
    provider._loop = asyncio.get_running_loop()  # type: ignore[attr-defined]
    provider._client = client  # type: ignore[assignment]
    provider._running = True  # type: ignore[attr-defined]
    return provider, client


@pytest.mark.asyncio
async def test_read_requests_fresh_report_and_waits_for_it() -> None:
    provider, client = _connected_provider()

    task = asyncio.create_task(provider.read(timeout_s=1.0, max_age_s=0.0))
    await asyncio.sleep(0)
    assert client.published == [("owntracks/alice/phone/cmd", '{"_type": "cmd", "action": "reportLocation"}')]

    # A stale report published before the request does not satisfy it.
    provider._on_message(client, None, _message(_location(NOW_MS // 1000 - 60)))  # type: ignore[arg-type]
    provider._on_message(client, None, _message(_location(NOW_MS // 1000 + 1, acc=6.0)))  # type: ignore[arg-type]

    sample = await task
    assert sample.accuracy_meters == 6.0
    assert sample.captured_at_ms == NOW_MS + 1000


@pytest.mark.asyncio
async def test_recent_fix_is_served_when_max_age_allows() -> None:
    provider, client = _connected_provider()
    provider._on_message(client, None, _message(_location(NOW_MS // 1000 - 5)))  # type: ignore[arg-type]
    await asyncio.sleep(0)

    sample = await provider.read(timeout_s=1.0, max_age_s=30.0)

    assert sample.captured_at_ms == NOW_MS - 5000
    assert client.published == []


@pytest.mark.asyncio
async def test_undecodable_and_foreign_messages_are_ignored() -> None:
    provider, client = _connected_provider()
    received: list[LocationSample] = []
    provider.subscribe(received.append, lambda _error: None)

    provider._on_message(client, None, _message(b"\xff\xfe"))  # type: ignore[arg-type]
    provider._on_message(client, None, _message({"_type": "transition", "event": "enter"}))  # type: ignore[arg-type]
    provider._on_message(client, None, _message(_location(NOW_MS // 1000)))  # type: ignore[arg-type]
    await asyncio.sleep(0)

    assert len(received) == 1


@pytest.mark.asyncio
async def test_read_times_out_without_report() -> None:
    provider, _ = _connected_provider()
    with pytest.raises(PositionTimeoutError):
        await provider.read(timeout_s=0.01, max_age_s=0.0)


@pytest.mark.asyncio
async def test_rejected_credentials_surface_as_permission_denied() -> None:
    provider, _ = _connected_provider()
    provider._auth_failed = True  # type: ignore[attr-defined]

    with pytest.raises(PositionPermissionDeniedError):
        await provider.read(timeout_s=1.0, max_age_s=0.0)


@pytest.mark.asyncio
async def test_read_without_connection_is_unavailable() -> None:
    provider = OwnTracksProvider(SETTINGS)
    with pytest.raises(PositionUnavailableError):
        await provider.read(timeout_s=1.0, max_age_s=0.0)


@pytest.mark.asyncio
async def test_stop_fails_pending_reads() -> None:
    provider, client = _connected_provider()

    task = asyncio.create_task(provider.read(timeout_s=5.0, max_age_s=0.0))
    await asyncio.sleep(0)
    await provider.stop()

    with pytest.raises(PositionUnavailableError):
        await task
    assert client.disconnected
    assert not provider.is_running


@pytest.mark.asyncio
async def test_report_from_the_same_second_satisfies_read() -> None:
    # Requested half a second into the second the device stamps its report with.
    provider, client = _connected_provider(NOW_MS + 500)

    task = asyncio.create_task(provider.read(timeout_s=1.0, max_age_s=0.0))
    await asyncio.sleep(0)
    provider._on_message(client, None, _message(_location(NOW_MS // 1000)))  # type: ignore[arg-type]

    sample = await task
    assert sample.captured_at_ms == NOW_MS
