"""Secret and payload redaction for safe logging.

Request bodies and platform settings pass through :func:`redact` before
they reach a log line or an error context:

* Values under sensitive keys (``app_secret``, ``cookie``, ``access_token``...)
  are masked, keeping only the last four characters.
* Base64 data URLs, as sent by image uploads, are replaced with
  ``<data_uri:N_bytes>``.
* Raw ``bytes`` values are replaced with ``<binary:N_bytes>``.
"""

from __future__ import annotations

import base64
import binascii
import copy
import re
from typing import Any

_DATA_URI_RE = re.compile(
    r"data:[a-zA-Z0-9_.+-]+/[a-zA-Z0-9_.+-]+;base64,[A-Za-z0-9+/=]+"
)

# A key containing any of these substrings (case-insensitive) is redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "api_key",
})


def _mask(value: str) -> str:
    return f"<redacted:...{value[-4:]}>" if len(value) >= 8 else "<redacted>"


def _data_uri_size(uri: str) -> int:
    b64_part = uri.split(";base64,", 1)[-1]
    try:
        return len(base64.b64decode(b64_part, validate=True))
    except (binascii.Error, ValueError):
        return len(b64_part) * 3 // 4


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return _redact_dict(value)
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, str) and _DATA_URI_RE.search(value):
        return _DATA_URI_RE.sub(
            lambda m: f"<data_uri:{_data_uri_size(m.group(0))}_bytes>",
            value,
        )
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict) -> dict:
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            result[key] = _mask(value) if isinstance(value, str) else "<redacted>"
        else:
            result[key] = _redact_value(value)
    return result


def redact(payload: dict) -> dict:
    """Return a deep copy of *payload* with sensitive data removed.

    The original *payload* is never mutated.

    Examples
    --------
    >>> redact({"app_secret": "abcdefgh1234"})
    {'app_secret': '<redacted:...1234>'}
    """
    return _redact_dict(copy.deepcopy(payload))
