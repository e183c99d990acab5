"""Per-source watermarks kept in the property table.

A watermark is the integer property ``"<source>.lastFetchTime"`` holding the
largest event time (epoch ms) fetched and stored for that source. It never
moves backwards: [advance()][timetrace.services.synchronizer.watermark.WatermarkStore.advance]
delegates to a single conditional upsert in the database.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from timetrace.core.exceptions import InvalidPropertyError
from timetrace.models import PropertyType
from timetrace.models._validation import validate_source_name


if TYPE_CHECKING:
    from timetrace.core.store import EventStore


logger = logging.getLogger(__name__)

WATERMARK_SUFFIX = ".lastFetchTime"


class WatermarkStore:
    """Map ``source_name -> last_fetch_time`` over an [EventStore][timetrace.core.store.EventStore]."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    @staticmethod
    def property_name(source_name: str) -> str:
        """Property key of ``source_name``'s watermark."""
        validate_source_name(source_name, "source_name")
        return f"{source_name}{WATERMARK_SUFFIX}"

    async def get(self, source_name: str) -> int | None:
        """Return the stored watermark, or None if the source was never advanced.

        A property of the wrong type, or one whose stored value does not
        match its type, is treated as absent (and logged); the next
        successful advance overwrites it.

        Raises:
            StoreReadError: If the property could not be read.
        """
        try:
            prop = await self._store.get_property(self.property_name(source_name))
        except InvalidPropertyError as e:
            logger.warning("watermark_invalid source=%s error=%s", source_name, e)
            return None
        if prop is None:
            return None
        if prop.type is not PropertyType.INTEGER:
            logger.warning(
                "watermark_type_mismatch source=%s type=%s", source_name, prop.type.name
            )
            return None
        return int(prop.value)

    async def advance(self, source_name: str, candidate: int) -> bool:
        """Raise the watermark to ``candidate`` if it is later than the stored value.

        Returns:
            Whether the stored value changed.

        Raises:
            StoreWriteError: If the upsert failed.
        """
        changed = await self._store.advance_property(self.property_name(source_name), candidate)
        return changed > 0
