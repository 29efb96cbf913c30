"""
Value encoding for the options table.

Strings are stored verbatim; everything else (numbers, booleans, None,
lists, dicts and nested structures) is stored as JSON with ``isJson`` set.
"""

import json
from typing import Any, Optional, Tuple

from simple_options.exceptions import InvalidOptionKey, OptionDecodeError, OptionEncodeError
from simple_options.models import MAX_KEY_LENGTH


def validate_key(key: str) -> str:
    """
    Reject keys the ``key`` column cannot hold.

    The limit is counted in UTF-8 bytes so that a key is never silently
    truncated by the column width.
    """
    if not isinstance(key, str):
        raise InvalidOptionKey(f"Option key must be a string, got {type(key).__name__}")
    if not key:
        raise InvalidOptionKey("Option key must not be empty")
    size = len(key.encode("utf-8"))
    if size > MAX_KEY_LENGTH:
        raise InvalidOptionKey(
            f"Option key is {size} bytes, exceeds maximum of {MAX_KEY_LENGTH}"
        )
    return key


def encode_value(value: Any) -> Tuple[str, bool]:
    """Return ``(stored_text, is_json)`` for a value."""
    if isinstance(value, str):
        return value, False
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False), True
    except (TypeError, ValueError) as exc:
        raise OptionEncodeError(
            f"Cannot store value of type {type(value).__name__}: {exc}"
        ) from exc


def decode_value(raw: Optional[str], is_json: bool, key: str = "") -> Any:
    if not is_json:
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise OptionDecodeError(key, str(exc)) from exc
