"""Recovery of pages and media from literal rendered export markup."""

from __future__ import annotations

import re
from typing import Dict, List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from .models import RenderedPage
from .utils import normalize_purl

_MAX_TITLE_CHARS = 120

PAGE_BLOCK_RE = re.compile(
    r'<div id="([A-Z][0-9]{10})" page-url="([^"]*)" class="([^"]*\bpage\b[^"]*)"[^>]*>'
    r'(.*?)<style id="mobile-offset-styles-\1">.*?</style></div>',
    re.DOTALL,
)
PAGE_OPEN_RE = re.compile(
    r'<div id="([A-Z][0-9]{10})" page-url="[^"]*" class="[^"]*\bpage\b[^"]*"'
)
BODYCOPY_RE = re.compile(r"<bodycopy[^>]*>(.*?)</bodycopy>", re.IGNORECASE | re.DOTALL)
FREIGHT_URL_RE = re.compile(
    r"https://freight\.cargo\.site/(?:t/original|w/\d+(?:/q/\d+)?)/i/([A-Za-z0-9]+)/([^\"'?\s<>]+)"
)


def _local_css_for(block: str, page_id: str) -> str:
    pattern = re.compile(
        r'<style>(\[id="' + re.escape(page_id) + r'".*?)</style>\s*'
        r'<style id="mobile-offset-styles-' + re.escape(page_id) + r'">',
        re.DOTALL,
    )
    match = pattern.search(block)
    return match.group(1) if match else ""


def derive_title(content: str, fallback: str = "") -> str:
    """Use the leading visible text of a page as its title."""
    text = BeautifulSoup(content or "", "html.parser").get_text(" ")
    text = " ".join(text.split())
    if not text:
        return fallback or "Untitled"
    return text[:_MAX_TITLE_CHARS]


def extract_rendered_pages(html: str) -> List[RenderedPage]:
    """Scan rendered markup for page containers that carry a bodycopy block."""
    pages: List[RenderedPage] = []
    for match in PAGE_BLOCK_RE.finditer(html):
        page_id, raw_purl, class_name, inner = match.groups()
        content_match = BODYCOPY_RE.search(inner)
        if not content_match:
            continue
        content = content_match.group(1).strip()
        purl = normalize_purl(raw_purl)
        tokens = class_name.split()
        pages.append(
            RenderedPage(
                id=page_id,
                purl=purl,
                class_name=class_name,
                pin="pinned" in tokens,
                stack="stacked-page" in tokens,
                overlay="overlay" in tokens,
                content=content,
                local_css=_local_css_for(match.group(0), page_id),
                title=derive_title(content, purl),
            )
        )
    return pages


def extract_page_order(html: str) -> List[str]:
    """Return top-level page ids in the order they were rendered."""
    order: List[str] = []
    for match in PAGE_OPEN_RE.finditer(html):
        page_id = match.group(1)
        if page_id not in order:
            order.append(page_id)
    return order


def _file_type(name: str) -> Optional[str]:
    if "." not in name:
        return None
    return name.rsplit(".", 1)[1].lower()


def extract_media_by_hash(html: str) -> Dict[str, dict]:
    """Rebuild minimal media records from CDN URLs found in the markup.

    When a hash appears both as an original and as a resized variant, the
    original's file name is kept.
    """
    media: Dict[str, dict] = {}
    for match in FREIGHT_URL_RE.finditer(html):
        url = match.group(0)
        media_hash, raw_name = match.groups()
        if media_hash in media and "/t/original/" not in url:
            continue
        name = unquote(raw_name)
        media[media_hash] = {
            "hash": media_hash,
            "name": name,
            "file_type": _file_type(name),
            "mime_type": None,
            "width": None,
            "height": None,
        }
    return media
