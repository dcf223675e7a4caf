"""Derivation of the public route manifest from the set/page hierarchy."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .assets import iter_page_media, original_media_url
from .config import PipelineConfig
from .models import RouteRecord
from .utils import utc_timestamp

logger = logging.getLogger("cargo_mirror.routes")


def build_media_index(state: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Flat hash -> descriptor table; the first occurrence of a hash wins."""
    index: Dict[str, Dict[str, Any]] = {}
    for page in ((state.get("pages") or {}).get("byId") or {}).values():
        if not isinstance(page, dict):
            continue
        for media in iter_page_media(page):
            media_hash = media["hash"]
            if media_hash in index:
                continue
            index[media_hash] = {
                "hash": media_hash,
                "name": media["name"],
                "width": media.get("width") or None,
                "height": media.get("height") or None,
                "fileType": media.get("file_type") or None,
                "mimeType": media.get("mime_type") or None,
                "url": original_media_url(media),
            }
    return index


def build_route_records(
    state: Dict[str, Any],
) -> Tuple[List[RouteRecord], Dict[str, str]]:
    """Routable sets in root order, plus the page-slug -> set-slug table."""
    pages = (state.get("pages") or {}).get("byId") or {}
    sets = (state.get("sets") or {}).get("byId") or {}
    by_parent = (state.get("structure") or {}).get("byParent") or {}

    records: List[RouteRecord] = []
    page_slug_to_set_slug: Dict[str, str] = {}
    for set_id in by_parent.get("root") or []:
        record = sets.get(set_id)
        if (
            set_id == "root"
            or not isinstance(record, dict)
            or record.get("id") == "root"
            or not record.get("purl")
            or record.get("display") is False
        ):
            continue

        slug = record["purl"]
        children = list(by_parent.get(set_id) or [])
        route = RouteRecord(
            set_id=set_id,
            slug=slug,
            title=record.get("title") or slug,
            all_child_page_ids=children,
        )
        for page_id in children:
            page = pages.get(page_id)
            if not isinstance(page, dict) or page.get("display") is False:
                continue
            page_slug = page.get("purl")
            # First set to claim a page slug keeps it.
            if page_slug and page_slug not in page_slug_to_set_slug:
                page_slug_to_set_slug[page_slug] = slug
            route.page_ids.append(page_id)
            if page.get("pin"):
                route.pinned_page_ids.append(page_id)
            else:
                route.content_page_ids.append(page_id)
        records.append(route)
    return records, page_slug_to_set_slug


def resolve_homepage_slug(
    state: Dict[str, Any], records: List[RouteRecord], fallback: str
) -> str:
    declared = (state.get("site") or {}).get("homepage_purl")
    if declared:
        return declared
    if records:
        return records[0].slug
    return fallback


def build_route_manifest(
    state: Dict[str, Any], config: Optional[PipelineConfig] = None
) -> Dict[str, Any]:
    config = config or PipelineConfig()
    records, page_slug_to_set_slug = build_route_records(state)
    homepage_slug = resolve_homepage_slug(state, records, config.homepage_fallback_slug)
    media_by_hash = build_media_index(state)
    removed_pages: List[str] = []

    logger.info(
        "Normalized routes: routes=%d removedPages=%d media=%d",
        len(records),
        len(removed_pages),
        len(media_by_hash),
    )
    return {
        "generatedAt": utc_timestamp(),
        "homepageSlug": homepage_slug,
        "routeSlugs": [record.slug for record in records],
        "routes": [record.to_dict() for record in records],
        "redirects": {"/": f"/{homepage_slug}"},
        "pageSlugToSetSlug": page_slug_to_set_slug,
        "removedPages": removed_pages,
        "mediaByHash": media_by_hash,
    }
