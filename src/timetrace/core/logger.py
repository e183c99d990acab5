"""
Event-style logging on top of the standard ``logging`` module.

Log calls name an event and attach fields as keyword arguments::

    logger = Logger("synchronizer")
    logger.info("source_synced", source="windows", inserted=12)
    # info synchronizer source_synced source=windows inserted=12

The fields travel on the ``LogRecord`` as the ``structured_kv`` attribute and
are rendered by [StructuredFormatter][timetrace.core.logger.StructuredFormatter],
which the CLI installs on the root handler. Records from plain
``logging.getLogger(__name__)`` loggers get the same ``level name message``
prefix. With ``json_output=True`` the message itself becomes a one-line JSON
document instead.
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any


DEFAULT_MAX_VALUE_LENGTH = 1000

# Characters that force a value into double quotes
_NEEDS_QUOTING = frozenset(' ="\'')


def _clip(text: str, limit: int | None) -> str:
    if not limit or len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


def _render_value(value: Any, limit: int | None) -> str:
    text = _clip(str(value), limit)
    if text and _NEEDS_QUOTING.isdisjoint(text):
        return text
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = DEFAULT_MAX_VALUE_LENGTH,
    prefix: str = " ",
) -> str:
    """Render ``kwargs`` as ``key=value`` pairs separated by spaces.

    Empty values and values containing whitespace, ``=`` or quotes are
    double-quoted with ``\\`` and ``"`` escaped. ``max_value_length=None``
    disables truncation. An empty mapping renders as ``""`` (no prefix).
    """
    if not kwargs:
        return ""
    return prefix + " ".join(
        f"{key}={_render_value(value, max_value_length)}" for key, value in kwargs.items()
    )


class StructuredFormatter(logging.Formatter):
    """``logging.Formatter`` producing ``level name message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        line += format_kv_pairs(getattr(record, "structured_kv", {}))
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class Logger:
    """Named logger whose methods take the event fields as ``**kwargs``.

    [bind()][timetrace.core.logger.Logger.bind] derives a logger that adds
    fixed fields to each record; fields given at the call site win over bound
    ones.
    """

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        return Logger(
            self.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def _emit(self, level: int, event: str, fields: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged = {**self._context, **fields}

        if self._json_output:
            document = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self.name,
                "message": event,
                **merged,
            }
            self._logger.log(level, json.dumps(document, default=str), exc_info=exc_info)
            return

        extra = {}
        if merged:
            extra["structured_kv"] = {
                key: _clip(value, self._max_value_length) if isinstance(value, str) else value
                for key, value in merged.items()
            }
        self._logger.log(level, event, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """ERROR with the traceback of the exception being handled."""
        self._emit(logging.ERROR, msg, kwargs, exc_info=True)
