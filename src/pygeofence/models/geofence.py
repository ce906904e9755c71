"""Registered work sites."""

from __future__ import annotations

from pydantic import Field, field_validator

from pygeofence.models.sample import Coordinate


class Geofence(Coordinate):
    """A circular work site supplied by the site registry (read-only here)."""

    id: str
    name: str = ""
    base_radius_meters: float = Field(gt=0.0)
    active: bool = True

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        site_id = value.strip()
        if not site_id:
            raise ValueError("geofence id must be non-empty")
        return site_id

    @property
    def label(self) -> str:
        """Name for user-facing messages, falling back to the id."""
        return self.name or self.id
