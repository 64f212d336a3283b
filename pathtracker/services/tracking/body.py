from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import orjson

from pathtracker.core.errors import ErrorCode, TrackerError

BINARY_SNIFF_CHARS = 1000
BINARY_PLACEHOLDER = {"binary": True, "content_type": "unknown"}

_BINARY_CHARS = re.compile(r"[\x00-\x08\x0E-\x1F]")


@dataclass(frozen=True)
class ProcessedBody:
    body: Any
    truncated: bool
    size_bytes: int


def is_binary_content(body: Any) -> bool:
    if not isinstance(body, str):
        return False
    return _BINARY_CHARS.search(body[:BINARY_SNIFF_CHARS]) is not None


def process_body(body: Any, max_size_bytes: int) -> ProcessedBody:
    """Shape a captured payload for storage under a byte ceiling.

    Strings are taken as already-serialized JSON; anything else is serialized
    compactly. Over-limit bodies are replaced by a placeholder holding the first
    ``max_size_bytes`` bytes of the serialized form. The cut is byte-based, so a
    multi-byte character straddling it is dropped and ``partial_content`` may
    be a few bytes shorter than ``stored_bytes`` and need not parse as JSON.
    Binary-looking strings are never measured and report a size of 0.
    Payloads that cannot be serialized (integers wider than 64 bits, nesting
    deeper than 254 levels) raise ``INVALID_REQUEST``.
    """
    if body is None:
        return ProcessedBody(body=None, truncated=False, size_bytes=0)

    if is_binary_content(body):
        return ProcessedBody(body=dict(BINARY_PLACEHOLDER), truncated=False, size_bytes=0)

    serialized = body.encode("utf-8") if isinstance(body, str) else _serialize(body)
    size_bytes = len(serialized)

    if size_bytes <= max_size_bytes:
        return ProcessedBody(body=_structured(body), truncated=False, size_bytes=size_bytes)

    return ProcessedBody(
        body={
            "truncated": True,
            "original_size_bytes": size_bytes,
            "stored_bytes": max_size_bytes,
            "partial_content": serialized[:max_size_bytes].decode("utf-8", errors="ignore"),
        },
        truncated=True,
        size_bytes=size_bytes,
    )


def _structured(body: Any) -> Any:
    if not isinstance(body, str):
        return body
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError:
        # not JSON text; keep the string as-is
        return body


def _serialize(body: Any) -> bytes:
    try:
        return orjson.dumps(body)
    except orjson.JSONEncodeError as exc:
        raise TrackerError(
            ErrorCode.INVALID_REQUEST,
            "Body could not be serialized as JSON",
            details=[{"msg": str(exc), "type": "json_encode"}],
        ) from exc
