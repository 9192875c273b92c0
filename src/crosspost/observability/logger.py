"""Structured JSON logging for publish cycles.

Every record is one JSON object.  Two things set this logger apart from
a plain ``logging`` setup:

* Fields passed as ``extra={"extra_fields": {...}}`` go through
  :func:`~crosspost.utils.redact.redact` first, so app secrets, cookies
  and upload payloads never reach the log stream.
* :func:`log_context` binds fields such as ``page_id`` and ``platform``
  for the duration of an attempt; every record emitted inside it, by
  the manager or by any adapter it calls, carries them.

Typical output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "INFO",
     "logger": "crosspost.adapters.wechat", "message": "Access token refreshed",
     "page_id": "abc123", "platform": "wechat-official", "expires_in": 7200}
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from crosspost.utils.redact import redact

_bound_fields: ContextVar[dict[str, Any]] = ContextVar("crosspost_log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach *fields* to every record logged inside the ``with`` block.

    Nested contexts merge, the inner value winning on a shared key.
    """
    token = _bound_fields.set({**_bound_fields.get(), **fields})
    try:
        yield
    finally:
        _bound_fields.reset(token)


def bound_fields() -> dict[str, Any]:
    """The fields currently bound by :func:`log_context`."""
    return dict(_bound_fields.get())


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    ``ts``, ``level``, ``logger`` and ``message`` are always present.  Bound
    context fields come next, then the record's own ``extra_fields``;
    both are redacted.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = {**_bound_fields.get(), **(getattr(record, "extra_fields", None) or {})}
        if fields:
            entry.update(redact(fields))
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


_configured: set[str] = set()


def get_logger(
    name: str = "crosspost",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Return the structured logger *name*, attaching its handler once.

    *level* may be an ``int`` or a level name in any case; *stream*
    defaults to ``sys.stderr``.  Only the first call for a name configures
    it.
    """
    logger = logging.getLogger(name)
    if name in _configured:
        return logger

    logger.setLevel(logging.getLevelName(level.upper()) if isinstance(level, str) else level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    _configured.add(name)
    return logger
