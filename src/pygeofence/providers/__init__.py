"""Positioning hardware adapters."""

from pygeofence.providers.base import PositionProvider
from pygeofence.providers.http import HttpPositionProvider
from pygeofence.providers.owntracks import OwnTracksProvider, OwnTracksSettings
from pygeofence.providers.static import StaticPositionProvider

__all__ = [
    "HttpPositionProvider",
    "OwnTracksProvider",
    "OwnTracksSettings",
    "PositionProvider",
    "StaticPositionProvider",
]
