#!/usr/bin/env python3
"""Field probe for pygeofence.

Reads the position from an HTTP endpoint or an OwnTracks device, optionally
calibrates against one site, then validates against a geofence file and
prints the result.

Geofence file format (camelCase, as exported by the site registry)::

    [{"id": "depot", "name": "Depot", "latitude": 51.5, "longitude": -0.12,
      "baseRadiusMeters": 75}]

Broker password is read from ``OWNTRACKS_PASSWORD``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pygeofence import (  # noqa: E402
    CalibrationProgress,
    Geofence,
    GeofenceConfig,
    GeofenceEngine,
    HttpPositionProvider,
    JsonFileKeyValueStore,
    LocationSample,
    OwnTracksProvider,
    OwnTracksSettings,
    PositionError,
)
from pygeofence.providers.base import PositionProvider  # noqa: E402

_LOG = logging.getLogger("probe_position")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate the current position against a geofence file.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--http", metavar="URL", help="JSON location endpoint.")
    source.add_argument("--owntracks-host", metavar="HOST", help="MQTT broker of an OwnTracks device.")
    parser.add_argument("--owntracks-topic", default="", help="Device topic, e.g. owntracks/alice/phone.")
    parser.add_argument("--owntracks-user", default=None, help="Broker username.")
    parser.add_argument("--owntracks-port", type=int, default=8883, help="Broker port.")
    parser.add_argument("--no-tls", action="store_true", help="Connect to the broker without TLS.")
    parser.add_argument(
        "--geofences",
        type=Path,
        required=True,
        help="JSON file with a list of geofences.",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=Path(".pygeofence.json"),
        help="Calibration/last-match store file.",
    )
    parser.add_argument(
        "--calibrate",
        metavar="SITE_ID",
        default=None,
        help="Calibrate against this site before validating.",
    )
    parser.add_argument(
        "--watch",
        type=float,
        default=0.0,
        help="Print continuous fixes for N seconds after validating.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _load_geofences(path: Path) -> list[Geofence]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise SystemExit(f"{path} must contain a JSON list of geofences")
    return [Geofence.model_validate(item) for item in raw]


def _build_provider(args: argparse.Namespace, config: GeofenceConfig) -> PositionProvider:
    if args.http:
        return HttpPositionProvider(args.http)
    if not args.owntracks_topic:
        raise SystemExit("--owntracks-topic is required with --owntracks-host")
    settings = OwnTracksSettings(
        host=args.owntracks_host,
        topic=args.owntracks_topic,
        port=args.owntracks_port,
        username=args.owntracks_user,
        password=os.environ.get("OWNTRACKS_PASSWORD"),
        tls=not args.no_tls,
    )
    return OwnTracksProvider(settings, timestamp_tolerance_s=config.timestamp_tolerance_s)


def _print_json(label: str, payload: dict[str, Any]) -> None:
    print(f"[probe] {label}")
    print(json.dumps(payload, indent=2, sort_keys=True))


def _print_progress(progress: CalibrationProgress) -> None:
    print(
        f"[probe]   calibrating {progress.percent:5.1f}%"
        f"  last={progress.last_accuracy_meters:.0f}m best={progress.best_accuracy_meters:.0f}m"
    )


def _print_fix(sample: LocationSample) -> None:
    print(f"[probe]   fix {sample.latitude:.5f},{sample.longitude:.5f} ±{sample.accuracy_meters:.0f}m")


async def _run(args: argparse.Namespace) -> int:
    geofences = _load_geofences(args.geofences)
    by_id = {g.id: g for g in geofences}
    config = GeofenceConfig.from_env()
    provider = _build_provider(args, config)

    async with GeofenceEngine(config, provider, JsonFileKeyValueStore(args.store)) as engine:
        if args.calibrate:
            target = by_id.get(args.calibrate)
            if target is None:
                print(f"[probe] Unknown site {args.calibrate!r}", file=sys.stderr)
                return 2
            outcome = await engine.calibrate(target.id, target, on_progress=_print_progress)
            _print_json("Calibration", outcome.to_storage())
            if not outcome.success:
                return 1
            engine.force_refresh()

        result = await engine.validate(geofences)
        _print_json("Validation", result.to_storage())
        print(f"[probe] {result.message}")

        if args.watch > 0:
            subscription = engine.watch(_print_fix, lambda error: print(f"[probe]   error: {error}"))
            try:
                await asyncio.sleep(args.watch)
            finally:
                subscription.cancel()

        _print_json("Stats", (await engine.stats()).to_storage())
        return 0 if result.accepted else 1


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except PositionError as exc:
        print(f"[probe] {exc.kind}: {exc.hint}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        _LOG.info("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(_main())
