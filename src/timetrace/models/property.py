"""Typed key/value property stored in the ``property`` table.

Properties are the storage substrate for per-source watermarks
(``"<source>.lastFetchTime"``), but the table is generic: any component may
keep a named scalar there.

See Also:
    [WatermarkStore][timetrace.services.synchronizer.watermark.WatermarkStore]:
        The logical layer that maps source names to watermark properties.
    [EventStore.upsert_property()][timetrace.core.store.EventStore.upsert_property]:
        Persists properties.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

from ._validation import validate_str_no_null, validate_str_not_empty
from .constants import PropertyType


PropertyValue = str | int | float


class PropertyDbParams(NamedTuple):
    """Positional parameters for the ``property_upsert`` stored procedure."""

    name: str
    type: int
    value: PropertyValue


@dataclass(frozen=True, slots=True)
class Property:
    """A single named scalar.

    The value must match its type tag: ``INTEGER`` takes an ``int``
    (``bool`` excluded), ``REAL`` takes a finite ``float`` or ``int``
    (stored as ``float``), ``TEXT`` takes a ``str``.

    Raises:
        TypeError: If the value does not match ``type``.
        ValueError: If ``name`` is empty, or a ``REAL`` value is not finite.
    """

    name: str
    type: PropertyType
    value: PropertyValue

    def __post_init__(self) -> None:
        validate_str_not_empty(self.name, "name")
        object.__setattr__(self, "type", PropertyType(self.type))

        if self.type is PropertyType.INTEGER:
            if isinstance(self.value, bool) or not isinstance(self.value, int):
                raise TypeError(f"INTEGER property {self.name!r} requires an int value")
        elif self.type is PropertyType.REAL:
            if isinstance(self.value, bool) or not isinstance(self.value, int | float):
                raise TypeError(f"REAL property {self.name!r} requires a float value")
            if not math.isfinite(self.value):
                raise ValueError(f"REAL property {self.name!r} must be finite")
            object.__setattr__(self, "value", float(self.value))
        else:
            validate_str_no_null(self.value, "value")

    @classmethod
    def integer(cls, name: str, value: int) -> Property:
        """Shorthand for an ``INTEGER`` property."""
        return cls(name=name, type=PropertyType.INTEGER, value=value)

    def to_db_params(self) -> PropertyDbParams:
        """Return the row in ``property_upsert`` column order."""
        return PropertyDbParams(name=self.name, type=int(self.type), value=self.value)

    @classmethod
    def from_db_params(cls, params: PropertyDbParams) -> Property:
        """Rebuild a property from a stored row."""
        return cls(name=params.name, type=PropertyType(params.type), value=params.value)
