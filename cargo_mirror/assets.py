"""Discovery, de-duplication and local placement of remote assets."""

from __future__ import annotations

import hashlib
import logging
import posixpath
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import urlsplit

from .config import FREIGHT_ORIGIN, PipelineConfig
from .models import AssetEntry
from .utils import encode_media_name, safe_segment, utc_timestamp

logger = logging.getLogger("cargo_mirror.assets")

SOURCE_STRING_SCAN = "state-string"
SOURCE_MEDIA_RECORD = "derived-original"

ASSET_URL_RE = re.compile(
    r"https://(?:freight|static)\.cargo\.site[^\"' )>]+?"
    r"\.(?:png|jpe?g|gif|webp|svg|ico|pdf)(?:\?[^\"' )>]*)?",
    re.IGNORECASE,
)

GIF_MAX_WIDTH = 720
GIF_QUALITY = 65
IMAGE_QUALITY = 75
DEFAULT_SOURCE_WIDTH = 1200
# (native width threshold, bucket): widths above the threshold snap to the bucket.
WIDTH_BUCKETS = ((1600, 1600), (900, 1200))
QUERY_HASH_CHARS = 10

AssetIndex = Dict[str, AssetEntry]


def original_media_url(media: Dict[str, Any]) -> Optional[str]:
    """Canonical, undownsized URL for a media record."""
    if not media.get("hash") or not media.get("name"):
        return None
    name = encode_media_name(str(media["name"]))
    return f"{FREIGHT_ORIGIN}/t/original/i/{media['hash']}/{name}"


def _source_width(media: Dict[str, Any]) -> int:
    try:
        width = int(float(media.get("width") or 0))
    except (TypeError, ValueError, OverflowError):
        width = 0
    return width or DEFAULT_SOURCE_WIDTH


def optimized_media_url(media: Dict[str, Any]) -> str:
    """Resized variant to download in place of the original."""
    source_width = _source_width(media)
    file_type = str(media.get("file_type") or media.get("fileType") or "").lower()
    if file_type == "gif":
        width, quality = min(source_width, GIF_MAX_WIDTH), GIF_QUALITY
    else:
        width, quality = source_width, IMAGE_QUALITY
        for threshold, bucket in WIDTH_BUCKETS:
            if source_width > threshold:
                width = min(bucket, source_width)
                break
    name = encode_media_name(str(media["name"]))
    return f"{FREIGHT_ORIGIN}/w/{width}/q/{quality}/i/{media['hash']}/{name}"


def add_asset(
    index: AssetIndex,
    url: Optional[str],
    source: str,
    download_url: Optional[str] = None,
) -> None:
    """Insert or update the entry for ``url``; never creates a duplicate."""
    if not url:
        return
    clean = url[:-1] if url.endswith("\\") else url
    entry = index.get(clean)
    if entry is None:
        entry = AssetEntry(url=clean, download_url=download_url or clean)
        index[clean] = entry
    elif download_url:
        entry.download_url = download_url
    entry.sources.add(source)


def _walk_strings(value: Any) -> Iterator[str]:
    stack = [value]
    while stack:
        current = stack.pop()
        if isinstance(current, str):
            yield current
        elif isinstance(current, dict):
            stack.extend(current.values())
        elif isinstance(current, (list, tuple)):
            stack.extend(current)


def discover_from_structural_walk(state: Any, index: AssetIndex) -> None:
    """Collect every asset-looking URL inside any string leaf of the state."""
    for text in _walk_strings(state):
        for match in ASSET_URL_RE.finditer(text):
            add_asset(index, match.group(0), SOURCE_STRING_SCAN)


def iter_page_media(page: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Thumbnail first, then inline media, skipping records without hash or name."""
    thumbnail = page.get("thumbnail")
    if isinstance(thumbnail, dict) and thumbnail.get("hash") and thumbnail.get("name"):
        yield thumbnail
    for item in page.get("media") or []:
        if isinstance(item, dict) and item.get("hash") and item.get("name"):
            yield item


def discover_from_media_records(state: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Pairs of (original URL, optimized download URL) for every page media."""
    pairs: List[Tuple[str, str]] = []
    for page in ((state.get("pages") or {}).get("byId") or {}).values():
        if not isinstance(page, dict):
            continue
        for media in iter_page_media(page):
            original = original_media_url(media)
            if original:
                pairs.append((original, optimized_media_url(media)))
    return pairs


def resolve_local_path(url: str, assets_root: str = "public/assets/cargo") -> str:
    """Map a remote URL to a stable path under ``assets_root``/<host>/.

    URLs with a query string get a short hash of that query spliced in
    before the extension so resize variants do not collide.
    """
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.hostname:
        raise ValueError(f"Not an absolute URL: {url!r}")
    # Collapse dot segments the way a URL parser does, clamped at the host root.
    path = posixpath.normpath("/" + parsed.path)
    segments = [safe_segment(part) for part in path.split("/") if part]
    file_name = segments.pop() if segments else "asset"

    if parsed.query:
        digest = hashlib.sha1(("?" + parsed.query).encode("utf-8")).hexdigest()
        suffix = f"__q{digest[:QUERY_HASH_CHARS]}"
        dot = file_name.rfind(".")
        if dot > 0:
            file_name = f"{file_name[:dot]}{suffix}{file_name[dot:]}"
        else:
            file_name = f"{file_name}{suffix}"

    return posixpath.join(assets_root, parsed.hostname, *segments, file_name)


def build_asset_index(state: Dict[str, Any]) -> AssetIndex:
    index: AssetIndex = {}
    discover_from_structural_walk(state, index)
    for original, optimized in discover_from_media_records(state):
        add_asset(index, original, SOURCE_MEDIA_RECORD, optimized)
    return index


def build_asset_manifest(
    state: Dict[str, Any], config: Optional[PipelineConfig] = None
) -> Dict[str, Any]:
    """Produce the asset manifest payload, sorted by canonical URL."""
    config = config or PipelineConfig()
    index = build_asset_index(state)
    assets = []
    for url in sorted(index):
        entry = index[url]
        try:
            entry.local_path = resolve_local_path(entry.url, config.assets_root)
        except ValueError as exc:
            logger.warning("Excluding malformed asset URL %s: %s", url, exc)
            continue
        assets.append(entry.to_dict())

    logger.info("Built asset manifest: assets=%d", len(assets))
    return {"generatedAt": utc_timestamp(), "total": len(assets), "assets": assets}
