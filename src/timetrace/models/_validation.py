"""Field checks run from the models' ``__post_init__``.

Each helper raises ``TypeError`` for a value of the wrong type and
``ValueError`` for a value of the right type that is out of range; ``label``
names the offending field in the message.
"""

from __future__ import annotations

import re
from typing import Any


# Source names prefix watermark property names and partition stored events
_SOURCE_NAME = re.compile(r"[a-z0-9][a-z0-9_.-]*")


def _require_type(value: Any, expected: type, label: str) -> None:
    # bool is an int subclass but never a valid timestamp or count
    if isinstance(value, bool) or not isinstance(value, expected):
        raise TypeError(f"{label}: expected {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, label: str) -> None:
    """Milliseconds since the epoch: an ``int`` that is ``>= 0``."""
    _require_type(value, int, label)
    if value < 0:
        raise ValueError(f"{label} must be non-negative, got {value}")


def validate_str_no_null(value: Any, label: str) -> None:
    _require_type(value, str, label)
    if "\x00" in value:
        raise ValueError(f"{label} contains a null character")


def validate_str_not_empty(value: Any, label: str) -> None:
    validate_str_no_null(value, label)
    if value == "":
        raise ValueError(f"{label} is empty")


def validate_source_name(value: Any, label: str = "source") -> None:
    """Lowercase ``[a-z0-9][a-z0-9_.-]*``, e.g. ``windows`` or ``team-jira``."""
    validate_str_not_empty(value, label)
    if _SOURCE_NAME.fullmatch(value) is None:
        raise ValueError(f"{label} must be lowercase without whitespace, got {value!r}")
