"""Extraction and merging of the CMS state embedded in export documents."""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import requests

from .config import (
    INFORMATION_PAGE_SLUGS,
    SCRIPT_CLOSE,
    STATE_MARKER,
    PipelineConfig,
)
from .content import extract_media_by_hash, extract_page_order, extract_rendered_pages
from .errors import MalformedExportError, NoUsableStateError
from .models import RenderedPage
from .utils import merge_unique

logger = logging.getLogger("cargo_mirror.state")

State = Dict[str, Any]

_RECORD_COLLECTIONS = ("pages", "sets", "media")
_ARRAY_FIELDS = frozenset({"media", "tags"})
_SHALLOW_STRUCTURE_INDEXES = ("bySort", "indexById", "liveIndexes")
_HASH_ATTR_RE = re.compile(r'hash="([^"]+)"')


def parse_embedded_state(html: str, source_label: str = "<document>") -> State:
    """Parse the JSON blob that follows the preloaded-state marker."""
    start = html.find(STATE_MARKER)
    if start == -1:
        raise MalformedExportError(f"{STATE_MARKER} not found in {source_label}")
    end = html.find(SCRIPT_CLOSE, start)
    if end == -1:
        raise MalformedExportError(
            f"Unable to find closing {SCRIPT_CLOSE} for preloaded state in {source_label}"
        )
    payload = html[start + len(STATE_MARKER) : end].strip()
    try:
        state = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedExportError(
            f"Preloaded state in {source_label} is not valid JSON: {exc}"
        ) from exc
    if not isinstance(state, dict):
        raise MalformedExportError(f"Preloaded state in {source_label} is not an object")
    return state


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


def _merge_record(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        current = merged.get(key)
        if key in _ARRAY_FIELDS:
            if isinstance(current, list) and current:
                continue
            if isinstance(value, list):
                merged[key] = copy.deepcopy(value)
            continue
        if _is_absent(current) and not _is_absent(value):
            merged[key] = copy.deepcopy(value)
    return merged


def _merge_by_id(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for record_id, record in incoming.items():
        existing = merged.get(record_id)
        if isinstance(existing, dict) and isinstance(record, dict):
            merged[record_id] = _merge_record(existing, record)
        elif existing is None:
            merged[record_id] = copy.deepcopy(record)
    return merged


def _merge_by_parent(
    base: Dict[str, List[str]], incoming: Dict[str, List[str]]
) -> Dict[str, List[str]]:
    merged = {parent: list(children or []) for parent, children in base.items()}
    for parent, children in incoming.items():
        merged[parent] = merge_unique(merged.get(parent, []), children or [])
    return merged


def _merge_structure(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = {**copy.deepcopy(base), **copy.deepcopy(incoming)}
    merged["byParent"] = _merge_by_parent(
        base.get("byParent") or {}, incoming.get("byParent") or {}
    )
    for index in _SHALLOW_STRUCTURE_INDEXES:
        merged[index] = {
            **copy.deepcopy(base.get(index) or {}),
            **copy.deepcopy(incoming.get(index) or {}),
        }
    return merged


def merge_state(base: State, incoming: State) -> State:
    """Merge ``incoming`` into ``base`` without losing or duplicating data.

    Top-level values from ``incoming`` win, except that ``site`` and
    ``frontendState`` keep the first non-empty side, the longer stylesheet
    is kept, child lists are unioned in order, and page/set/media records
    are filled field by field where the base value is missing.
    """
    merged: State = {**copy.deepcopy(base), **copy.deepcopy(incoming)}
    for key in ("site", "frontendState"):
        merged[key] = copy.deepcopy(base.get(key) or incoming.get(key) or {})

    base_css = base.get("css") or {}
    incoming_css = incoming.get("css") or {}
    base_sheet = base_css.get("stylesheet") or ""
    incoming_sheet = incoming_css.get("stylesheet") or ""
    merged["css"] = {
        **copy.deepcopy(base_css),
        **copy.deepcopy(incoming_css),
        "stylesheet": incoming_sheet if len(incoming_sheet) > len(base_sheet) else base_sheet,
    }

    for collection in _RECORD_COLLECTIONS:
        base_coll = base.get(collection) or {}
        incoming_coll = incoming.get(collection) or {}
        merged[collection] = {
            **copy.deepcopy(base_coll),
            **copy.deepcopy(incoming_coll),
            "byId": _merge_by_id(base_coll.get("byId") or {}, incoming_coll.get("byId") or {}),
        }

    merged["structure"] = _merge_structure(
        base.get("structure") or {}, incoming.get("structure") or {}
    )
    return merged


def _ensure_skeleton(state: State) -> State:
    for collection in _RECORD_COLLECTIONS:
        state.setdefault(collection, {}).setdefault("byId", {})
    structure = state.setdefault("structure", {})
    structure.setdefault("byParent", {})
    state.setdefault("site", {})
    return state


def find_parent_set_ids(state: State, page_id: str) -> List[str]:
    """Every parent that lists ``page_id`` as a child, in index order."""
    by_parent = (state.get("structure") or {}).get("byParent") or {}
    return [
        parent
        for parent, children in by_parent.items()
        if isinstance(children, list) and page_id in children
    ]


def find_parent_set_id(state: State, page_id: str) -> Optional[str]:
    parents = find_parent_set_ids(state, page_id)
    return parents[0] if parents else None


def find_set_id_by_purl(state: State, purl: Optional[str]) -> Optional[str]:
    if not purl:
        return None
    for record in ((state.get("sets") or {}).get("byId") or {}).values():
        if isinstance(record, dict) and record.get("purl") == purl:
            return record.get("id")
    return None


def has_information_page(state: State) -> bool:
    for page in ((state.get("pages") or {}).get("byId") or {}).values():
        if not isinstance(page, dict):
            continue
        purl = str(page.get("purl") or "").lower()
        title = str(page.get("title") or "").lower()
        if purl == "information" or title == "information":
            return True
    return False


@dataclass
class _SetResolution:
    set_id: str
    from_fallback: bool


def _homepage_set(state: State, config: PipelineConfig) -> _SetResolution:
    site = state.get("site") or {}
    set_id = site.get("homepage_id") or find_set_id_by_purl(state, site.get("homepage_purl"))
    if set_id:
        return _SetResolution(set_id, False)
    return _SetResolution(config.homepage_fallback_set_id, True)


def _bio_set(state: State, config: PipelineConfig) -> _SetResolution:
    set_id = find_set_id_by_purl(state, config.bio_set_slug)
    if set_id:
        return _SetResolution(set_id, False)
    return _SetResolution(config.bio_fallback_set_id, True)


def _fill_page(existing: Dict[str, Any], rendered: RenderedPage) -> Dict[str, Any]:
    page = copy.deepcopy(existing)
    page["id"] = rendered.id

    def fill(key: str, value: Any) -> None:
        if _is_absent(page.get(key)):
            page[key] = value

    fill("title", rendered.title)
    fill("purl", rendered.purl or rendered.id.lower())
    fill("page_type", "page")
    fill("content", rendered.content)
    fill("local_css", rendered.local_css)
    fill("display", True)
    fill("stack", rendered.stack)
    fill("pin", rendered.pin)
    fill("overlay", rendered.overlay)
    fill("password_enabled", False)
    fill("page_count", 0)
    fill("access_level", "public")
    for key in _ARRAY_FIELDS:
        if not isinstance(page.get(key), list):
            page[key] = []
    return page


def append_rendered_pages(
    state: State,
    rendered_pages: Sequence[RenderedPage],
    source_label: str,
    config: Optional[PipelineConfig] = None,
) -> State:
    """Attach pages recovered from markup to the state, filling gaps only.

    Pages already listed under a parent stay there. Orphans go to the bio
    set when their slug is an information slug, otherwise to the homepage
    set. Landing-page sources also seed the homepage child order.
    """
    if not rendered_pages:
        return state
    config = config or PipelineConfig()
    updated = _ensure_skeleton(copy.deepcopy(state))
    pages = updated["pages"]["byId"]
    by_parent = updated["structure"]["byParent"]
    homepage = _homepage_set(updated, config)
    bio = _bio_set(updated, config)
    is_landing = "landing" in source_label
    order_from_source: List[str] = []

    for rendered in rendered_pages:
        target = find_parent_set_id(updated, rendered.id)
        if target is None:
            chosen = bio if rendered.purl in INFORMATION_PAGE_SLUGS else homepage
            if chosen.from_fallback:
                logger.warning(
                    "No set matched by slug for orphan page %s; using fallback set id %s",
                    rendered.id,
                    chosen.set_id,
                )
            target = chosen.set_id

        existing = pages.get(rendered.id)
        pages[rendered.id] = _fill_page(existing if isinstance(existing, dict) else {}, rendered)

        children = by_parent.setdefault(target, [])
        if rendered.id not in children:
            children.append(rendered.id)

        if target == homepage.set_id and is_landing:
            order_from_source.append(rendered.id)

    if order_from_source:
        by_parent[homepage.set_id] = merge_unique(
            order_from_source, by_parent.get(homepage.set_id, [])
        )
    return updated


def append_media_from_html(state: State, media_by_hash: Dict[str, dict]) -> State:
    """Backfill page media lists with hashes referenced inline in content."""
    updated = copy.deepcopy(state)
    for page in ((updated.get("pages") or {}).get("byId") or {}).values():
        if not isinstance(page, dict):
            continue
        hashes = _HASH_ATTR_RE.findall(str(page.get("content") or ""))
        if not hashes:
            continue
        if not isinstance(page.get("media"), list):
            page["media"] = []
        known = {item.get("hash") for item in page["media"] if isinstance(item, dict)}
        for media_hash in hashes:
            if media_hash in known or media_hash not in media_by_hash:
                continue
            page["media"].append(dict(media_by_hash[media_hash]))
            known.add(media_hash)
    return updated


def apply_page_order(state: State, order: Sequence[str], set_id: str) -> State:
    """Put rendered order first, then any already-known children."""
    updated = _ensure_skeleton(copy.deepcopy(state))
    by_parent = updated["structure"]["byParent"]
    by_parent[set_id] = merge_unique(order, by_parent.get(set_id, []))
    return updated


def fetch_state(
    url: str, session: Optional[requests.Session] = None
) -> State:
    """Download a live page and parse its embedded state."""
    session = session or requests.Session()
    response = session.get(url)
    response.raise_for_status()
    return parse_embedded_state(response.text, url)


def _fetch_fallback(
    url: Optional[str], session: Optional[requests.Session]
) -> Optional[State]:
    if not url:
        return None
    try:
        state = fetch_state(url, session)
    except (requests.RequestException, MalformedExportError) as exc:
        logger.warning("Unable to fetch fallback state from %s: %s", url, exc)
        return None
    logger.info("Merged fallback state from %s", url)
    return state


def _read_sources(paths: Iterable[Path]) -> List[Tuple[Path, str, State]]:
    usable: List[Tuple[Path, str, State]] = []
    for path in paths:
        try:
            html = path.read_text(encoding="utf-8")
            state = parse_embedded_state(html, str(path))
        except (MalformedExportError, UnicodeDecodeError, OSError) as exc:
            logger.warning("Skipping unusable export %s: %s", path, exc)
            continue
        usable.append((path, html, state))
    return usable


def extract_state(
    sources: Sequence[Path],
    config: Optional[PipelineConfig] = None,
    use_fallback: bool = True,
    session: Optional[requests.Session] = None,
) -> State:
    """Build one canonical state from export documents.

    Raises ``NoUsableStateError`` when no document carries a parseable
    state and the network fallback does not produce one either.
    """
    config = config or PipelineConfig()
    usable = _read_sources(sources)
    fallback_url = config.fallback_url if use_fallback else None

    merged: Optional[State] = None
    for _, _, state in usable:
        merged = state if merged is None else merge_state(merged, state)

    if merged is None:
        merged = _fetch_fallback(fallback_url, session)
        if merged is None:
            raise NoUsableStateError(
                "No usable embedded state found in: "
                + (", ".join(str(path) for path in sources) or "(no sources)")
            )
    elif not has_information_page(merged):
        fallback = _fetch_fallback(fallback_url, session)
        if fallback is not None:
            merged = merge_state(merged, fallback)

    merged = _ensure_skeleton(merged)
    for path, html, _ in usable:
        merged = append_rendered_pages(
            merged, extract_rendered_pages(html), str(path), config
        )
        merged = append_media_from_html(merged, extract_media_by_hash(html))

    landing = next((item for item in usable if "landing" in str(item[0])), None)
    if landing is not None:
        homepage = _homepage_set(merged, config)
        merged = apply_page_order(merged, extract_page_order(landing[1]), homepage.set_id)

    logger.info(
        "Extracted state from %d source(s): pages=%d sets=%d",
        len(usable),
        len(merged["pages"]["byId"]),
        len(merged["sets"]["byId"]),
    )
    return merged
