"""HTTP position provider.

Polls a JSON location endpoint, typically a companion app on the phone
or a gpsd bridge on a kiosk, and normalizes its failures into the
:class:`PositionError` taxonomy.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pygeofence._redact import redact_for_log
from pygeofence.exceptions import (
    PositionError,
    PositionPermissionDeniedError,
    PositionTimeoutError,
    PositionUnavailableError,
    PositionUnsupportedError,
)
from pygeofence.models.sample import LocationSample
from pygeofence.providers._payload import parse_fix_payload
from pygeofence.providers.base import ErrorCallback, SampleCallback, Unsubscribe, now_ms

_logger = logging.getLogger(__name__)

_PERMISSION_STATUSES = frozenset({401, 403})
_UNSUPPORTED_STATUSES = frozenset({404, 501})


def _error_for_status(status: int, url: str, text: str) -> PositionError:
    message = f"HTTP {status} from {url}: {text[:200]}"
    if status in _PERMISSION_STATUSES:
        return PositionPermissionDeniedError(message)
    if status in _UNSUPPORTED_STATUSES:
        return PositionUnsupportedError(message)
    return PositionUnavailableError(message)


class HttpPositionProvider:
    """Position provider backed by a JSON-over-HTTP endpoint.

    Each :meth:`read` issues ``GET <url>?maxAge=<ms>&highAccuracy=true``;
    the endpoint is expected to answer with a W3C-style position object
    or a flat ``{"lat", "lon", "accuracy", "timestamp"}`` document.

    Parameters
    ----------
    url : str
        Location endpoint.
    session : aiohttp.ClientSession or None
        Shared HTTP session. When omitted one is created in :meth:`start`
        and closed in :meth:`stop`.
    headers : dict or None
        Extra request headers (e.g. an ``Authorization`` token).
    poll_interval_s : float
        Interval between polls for watch subscriptions.
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
        poll_interval_s: float = 5.0,
        wall_clock: Callable[[], int] = now_ms,
    ) -> None:
        self._url = url
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})
        self._poll_interval_s = poll_interval_s
        self._wall_clock = wall_clock
        self._watch_tasks: set[asyncio.Task[None]] = set()

    async def start(self) -> None:
        if self._http is None:
            self._http = aiohttp.ClientSession()

    async def stop(self) -> None:
        tasks = list(self._watch_tasks)
        self._watch_tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise PositionUnavailableError("HTTP provider not started")
        return self._http

    async def read(self, *, timeout_s: float, max_age_s: float, high_accuracy: bool = True) -> LocationSample:
        http = self._require_session()
        params = {
            "maxAge": str(int(max_age_s * 1000)),
            "highAccuracy": "true" if high_accuracy else "false",
        }
        _logger.debug("GET %s params=%s", self._url, params)

        try:
            async with http.get(
                self._url,
                params=params,
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=timeout_s),
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise _error_for_status(resp.status, self._url, text)
        except PositionError:
            raise
        except TimeoutError as exc:
            raise PositionTimeoutError(f"No fix from {self._url} within {timeout_s:.0f}s") from exc
        except aiohttp.ClientError as exc:
            raise PositionUnavailableError(f"Request to {self._url} failed: {exc}") from exc

        try:
            payload: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PositionUnavailableError(f"Invalid JSON from {self._url}: {text[:200]}") from exc
        if not isinstance(payload, dict):
            raise PositionUnavailableError(f"Position payload from {self._url} is not an object")

        _logger.debug("Position payload %s", redact_for_log(payload))
        return parse_fix_payload(payload, now_ms=self._wall_clock())

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._poll(on_sample, on_error))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)
        return task.cancel

    async def _poll(self, on_sample: SampleCallback, on_error: ErrorCallback) -> None:
        while True:
            try:
                sample = await self.read(timeout_s=max(self._poll_interval_s, 1.0) * 3, max_age_s=0.0)
            except PositionError as exc:
                on_error(exc)
            else:
                on_sample(sample)
            await asyncio.sleep(self._poll_interval_s)
