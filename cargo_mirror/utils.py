"""Utility helpers for string normalization, ordering and JSON files."""

from __future__ import annotations

import datetime as dt
import json
import re
import unicodedata
from pathlib import Path
from typing import Any, Iterable, List
from urllib.parse import quote, unquote

SEGMENT_PATTERN = re.compile(r"[^\w.-]")
UNDERSCORE_RUN = re.compile(r"_+")
HOST_PREFIX = re.compile(r"^https?://[^/]+", re.IGNORECASE)
QUERY_OR_FRAGMENT = re.compile(r"[?#].*$", re.DOTALL)


def safe_segment(value: str, fallback: str = "asset") -> str:
    """Reduce one path segment to word characters, dots and hyphens."""
    normalized = unicodedata.normalize("NFKC", value)
    normalized = SEGMENT_PATTERN.sub("_", normalized)
    normalized = UNDERSCORE_RUN.sub("_", normalized).strip("_")
    if not normalized.strip("."):
        return fallback
    return normalized


def normalize_purl(raw: str) -> str:
    """Turn a rendered ``page-url`` attribute into a bare, decoded slug."""
    if not raw:
        return ""
    cleaned = HOST_PREFIX.sub("", raw)
    cleaned = cleaned.lstrip("/")
    cleaned = QUERY_OR_FRAGMENT.sub("", cleaned)
    return unquote(cleaned)


def encode_media_name(name: str) -> str:
    """Percent-encode a media file name, keeping ``/`` literal."""
    return quote(name, safe="/~!*'()")


def merge_unique(base: Iterable[Any], incoming: Iterable[Any]) -> List[Any]:
    """Order-stable union: everything in ``base``, then unseen ``incoming`` items."""
    merged = list(base or [])
    for item in incoming or []:
        if item not in merged:
            merged.append(item)
    return merged


def utc_timestamp() -> str:
    return (
        dt.datetime.now(dt.timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json(path: Path, payload: Any) -> None:
    """Write pretty-printed JSON with a trailing newline, creating parents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
