"""Lookups the renderer uses to map remote references onto local output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlsplit

from .assets import original_media_url
from .config import BIO_SET_SLUG, PipelineConfig
from .errors import MissingInputError
from .utils import read_json

HASH_IN_URL_RE = re.compile(r"/i/([A-Za-z0-9]+)/")
_PUBLIC_PREFIX_RE = re.compile(r"^public[\\/]")


def to_public_path(local_path: str) -> str:
    """``public/assets/x.png`` -> ``/assets/x.png``."""
    return "/" + _PUBLIC_PREFIX_RE.sub("", local_path).replace("\\", "/")


def hash_from_url(url: Optional[str]) -> Optional[str]:
    match = HASH_IN_URL_RE.search(str(url or ""))
    return match.group(1) if match else None


def is_visible_on_viewport(page: Dict[str, Any], is_mobile: bool) -> bool:
    visibility = (page.get("pin_options") or {}).get("screen_visibility")
    if visibility == "mobile":
        return is_mobile
    if visibility == "desktop":
        return not is_mobile
    return True


@dataclass
class SiteData:
    """State plus both manifests, indexed for render-time lookups."""

    state: Dict[str, Any]
    routes: Dict[str, Any]
    assets: Dict[str, Any]
    local_asset_by_remote_url: Dict[str, str] = field(default_factory=dict)
    local_asset_by_hash: Dict[str, str] = field(default_factory=dict)
    route_alias_by_set_slug: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for asset in self.assets.get("assets") or []:
            local = to_public_path(asset["localPath"])
            self.local_asset_by_remote_url[asset["url"]] = local
            media_hash = hash_from_url(asset["url"])
            if not media_hash:
                continue
            if media_hash not in self.local_asset_by_hash or "/t/original/" in asset["url"]:
                self.local_asset_by_hash[media_hash] = local
        self.route_alias_by_set_slug = {
            self.homepage_slug: "home",
            BIO_SET_SLUG: "bio",
        }

    @classmethod
    def load(cls, config: PipelineConfig) -> "SiteData":
        inputs = (
            (config.state_path, "cargo-mirror extract"),
            (config.route_manifest_path, "cargo-mirror routes"),
            (config.asset_manifest_path, "cargo-mirror assets"),
        )
        loaded = []
        for relative, command in inputs:
            path = config.resolve(relative)
            if not path.exists():
                raise MissingInputError(path, command)
            loaded.append(read_json(path))
        return cls(*loaded)

    @property
    def homepage_slug(self) -> str:
        return self.routes.get("homepageSlug") or ""

    @property
    def site_origin(self) -> Optional[str]:
        site = self.state.get("site") or {}
        url = site.get("website_url") or site.get("direct_link") or site.get("url")
        if not url:
            return None
        parsed = urlsplit(url if "//" in url else f"https://{url}")
        return f"{parsed.scheme}://{parsed.netloc}"

    def resolve_media_url(self, media: Dict[str, Any]) -> Optional[str]:
        """Local path for a media record, by original URL and then by hash."""
        original = original_media_url(media)
        if original is None:
            return None
        if original in self.local_asset_by_remote_url:
            return self.local_asset_by_remote_url[original]
        return self.local_asset_by_hash.get(media["hash"])

    def to_canonical_route_slug(self, set_slug: str) -> str:
        return self.route_alias_by_set_slug.get(set_slug, set_slug)

    def to_set_slug_from_route_slug(self, route_slug: str) -> str:
        for set_slug, alias in self.route_alias_by_set_slug.items():
            if alias == route_slug:
                return set_slug
        return route_slug

    def to_route_path(self, slug: str) -> str:
        return "/" + quote(self.to_canonical_route_slug(slug), safe="/")

    def resolve_internal_href(self, href: Optional[str]) -> Optional[str]:
        """Map a CMS link to a local route path, or None for external links."""
        if not href or href == "#":
            return self.to_route_path(self.homepage_slug)
        if href.startswith(("mailto:", "tel:", "#")):
            return None

        candidate = href
        if re.match(r"^https?://", href, re.IGNORECASE):
            parsed = urlsplit(href)
            if not self.site_origin or f"{parsed.scheme}://{parsed.netloc}" != self.site_origin:
                return None
            candidate = parsed.path + (f"?{parsed.query}" if parsed.query else "")

        if not candidate.startswith("/"):
            candidate = "/" + candidate
        path_only, _, query = candidate.partition("?")
        slug = unquote(path_only.lstrip("/"))
        if not slug:
            return self.to_route_path(self.homepage_slug)

        mapped = (self.routes.get("pageSlugToSetSlug") or {}).get(slug, slug)
        base = self.to_route_path(mapped)
        return f"{base}?{query}" if query else base
