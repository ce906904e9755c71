"""Base model for pygeofence data types.

Every model inherits from :class:`GeoBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase payloads (browser geolocation
  objects, persisted JSON) map automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops placeholder values
  (``None``, ``""``, NaN) so the field default is used instead.
* Immutability: samples, records and results never change once built.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def _is_placeholder(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return isinstance(value, float) and math.isnan(value)


class GeoBaseModel(BaseModel):
    """Frozen base for all pygeofence models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_placeholders(cls, values: Any) -> Any:
        """Strip placeholder values so defaults apply."""
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if not _is_placeholder(value)}

    def to_storage(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys, as persisted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
