"""
KV Cache — Structured Value Codec

Tagged JSON encoding that round-trips values plain JSON would lose.

The encoded form is an envelope:

    {"json": <plain JSON value>, "meta": {"values": {<path>: <tag>}}}

`json` holds the value with every non-JSON type lowered to a JSON type, and
`meta.values` records, per dotted path, which type to rebuild on decode.
`meta` is omitted when nothing needed tagging. Path segments are dict keys or
list indexes joined with "."; literal dots and backslashes inside keys are
escaped with a backslash, and an empty key is written as "\\0" so it never
shares the root path "".

Supported tags: datetime, date, tuple, set, Decimal, UUID, bytes.
Dict keys are stringified, as with plain JSON.

Example:
    text = dumps({"at": datetime(2024, 1, 1, tzinfo=UTC), "ids": {1, 2}})
    loads(text)  # -> {"at": datetime(2024, 1, 1, tzinfo=UTC), "ids": {1, 2}}
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from ..errors import CacheSerializationError

logger = logging.getLogger(__name__)

_DECODERS: dict[str, Callable[[Any], Any]] = {
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "tuple": tuple,
    "set": set,
    "Decimal": Decimal,
    "UUID": UUID,
    "bytes": lambda v: base64.b64decode(v.encode("ascii"), validate=True),
}


def _escape_segment(segment: str) -> str:
    if not segment:
        # An empty key must not join to "", which is the root's path
        return "\\0"
    return segment.replace("\\", "\\\\").replace(".", "\\.")


def _join_path(path: list[str]) -> str:
    return ".".join(_escape_segment(segment) for segment in path)


def _encode(value: Any, path: list[str], tags: dict[str, str]) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        tags[_join_path(path)] = "datetime"
        return value.isoformat()
    if isinstance(value, date):
        tags[_join_path(path)] = "date"
        return value.isoformat()
    if isinstance(value, Decimal):
        tags[_join_path(path)] = "Decimal"
        return str(value)
    if isinstance(value, UUID):
        tags[_join_path(path)] = "UUID"
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        tags[_join_path(path)] = "bytes"
        return base64.b64encode(bytes(value)).decode("ascii")

    if isinstance(value, dict):
        return {str(k): _encode(v, path + [str(k)], tags) for k, v in value.items()}
    if isinstance(value, list):
        return [_encode(v, path + [str(i)], tags) for i, v in enumerate(value)]
    if isinstance(value, tuple):
        tags[_join_path(path)] = "tuple"
        return [_encode(v, path + [str(i)], tags) for i, v in enumerate(value)]
    if isinstance(value, (set, frozenset)):
        tags[_join_path(path)] = "set"
        return [_encode(v, path + [str(i)], tags) for i, v in enumerate(value)]

    raise CacheSerializationError(
        f"Cannot serialize value of type {type(value).__name__}",
        details={"path": _join_path(path), "value_type": type(value).__name__},
    )


def _decode(value: Any, path: list[str], tags: dict[str, str]) -> Any:
    if isinstance(value, dict):
        value = {k: _decode(v, path + [k], tags) for k, v in value.items()}
    elif isinstance(value, list):
        value = [_decode(v, path + [str(i)], tags) for i, v in enumerate(value)]

    tag = tags.get(_join_path(path))
    if tag is None:
        return value

    decoder = _DECODERS.get(tag)
    if decoder is None:
        raise CacheSerializationError(
            f"Unknown type tag '{tag}' in structured value",
            details={"path": _join_path(path), "tag": tag},
        )
    try:
        return decoder(value)
    except (TypeError, ValueError, InvalidOperation, binascii.Error) as e:
        raise CacheSerializationError(
            f"Invalid '{tag}' payload in structured value: {e}",
            details={"path": _join_path(path), "tag": tag},
        ) from e


def is_envelope(obj: Any) -> bool:
    """Check whether `obj` has the shape of an encoded structured value."""
    return isinstance(obj, dict) and "json" in obj and set(obj) <= {"json", "meta"}


def serialize(value: Any) -> dict[str, Any]:
    """Encode a value into an envelope dict."""
    tags: dict[str, str] = {}
    plain = _encode(value, [], tags)
    envelope: dict[str, Any] = {"json": plain}
    if tags:
        envelope["meta"] = {"values": tags}
    return envelope


def deserialize(envelope: Any) -> Any:
    """Rebuild a value from an envelope dict."""
    if not is_envelope(envelope):
        raise CacheSerializationError(
            "Structured value is missing its 'json' payload",
            details={"value_type": type(envelope).__name__},
        )

    meta = envelope.get("meta") or {}
    tags = meta.get("values", {}) if isinstance(meta, dict) else None
    if not isinstance(tags, dict) or not all(isinstance(t, str) for t in tags.values()):
        raise CacheSerializationError(
            "Structured value has malformed 'meta' section",
            details={"meta": repr(meta)[:100]},
        )

    return _decode(envelope["json"], [], tags)


def dumps(value: Any) -> str:
    """Encode a value to envelope JSON text."""
    return json.dumps(serialize(value), ensure_ascii=False, separators=(",", ":"))


def loads(text: str | bytes) -> Any:
    """Decode envelope JSON text produced by dumps()."""
    try:
        envelope = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        raise CacheSerializationError(
            f"Structured value is not valid JSON: {e}",
            details={"data_preview": str(text)[:100]},
        ) from e
    return deserialize(envelope)


def decode_stored(raw: Any) -> Any:
    """
    Decode a value read back from a store that may hold either encoding.

    The stored form is one of:
    - None: absent
    - an envelope dict: structured decode
    - text holding envelope JSON: structured decode
    - text holding a JSON string that itself holds envelope JSON
      (an envelope written through plain set()): structured decode
    - any other JSON text: the parsed plain value
    - non-JSON text (written by other clients): returned as is
    - any other value: returned as is
    """
    if raw is None:
        return None

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")

    if isinstance(raw, dict):
        return deserialize(raw) if is_envelope(raw) else raw

    if not isinstance(raw, str):
        return raw

    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.debug("Stored value is not JSON, returning raw text", extra={"data_preview": raw[:100]})
        return raw

    if is_envelope(parsed):
        return deserialize(parsed)

    if isinstance(parsed, str):
        try:
            inner = json.loads(parsed)
        except ValueError:
            return parsed
        if is_envelope(inner):
            return deserialize(inner)

    return parsed
