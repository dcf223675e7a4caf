"""Data models used throughout the export pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


@dataclass
class RenderedPage:
    """A page container recovered from literal rendered markup."""

    id: str
    purl: str
    class_name: str
    pin: bool
    stack: bool
    overlay: bool
    content: str
    local_css: str
    title: str


@dataclass
class AssetEntry:
    """One distinct remote asset, keyed by its canonical URL."""

    url: str
    download_url: str
    local_path: str = ""
    sources: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "downloadUrl": self.download_url or self.url,
            "localPath": self.local_path,
            "sources": sorted(self.sources),
        }


@dataclass
class DownloadResult:
    """Outcome of fetching a single manifest entry."""

    url: str
    fetched_from: str
    local_path: str
    status: str
    attempts: int
    http_status: Optional[int]
    bytes: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "downloaded"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "url": self.url,
            "fetchedFrom": self.fetched_from,
            "localPath": self.local_path,
            "status": self.status,
            "attempts": self.attempts,
            "httpStatus": self.http_status,
            "bytes": self.bytes,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class RouteRecord:
    """A routable set and its partitioned member pages."""

    set_id: str
    slug: str
    title: str
    all_child_page_ids: List[str]
    page_ids: List[str] = field(default_factory=list)
    pinned_page_ids: List[str] = field(default_factory=list)
    content_page_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setId": self.set_id,
            "slug": self.slug,
            "title": self.title,
            "allChildPageIds": list(self.all_child_page_ids),
            "pageIds": list(self.page_ids),
            "pinnedPageIds": list(self.pinned_page_ids),
            "contentPageIds": list(self.content_page_ids),
        }
