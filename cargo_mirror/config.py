"""Configuration objects and constants for the export pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger("cargo_mirror.config")

STATE_MARKER = "window.__PRELOADED_STATE__="
SCRIPT_CLOSE = "</script>"

CDN_HOSTS = ("freight.cargo.site", "static.cargo.site")
FREIGHT_ORIGIN = "https://freight.cargo.site"

# Used only when the slug lookup into sets.byId fails.
HOMEPAGE_FALLBACK_SET_ID = "K3898273367"
BIO_FALLBACK_SET_ID = "D1206349348"

BIO_SET_SLUG = "information-1"
INFORMATION_PAGE_SLUGS = ("information", "信息-1")
HOMEPAGE_FALLBACK_SLUG = "xuechun-tao"
FALLBACK_STATE_URL = "https://xuechuntao.com/information-1"

DEFAULT_EXPORT_SOURCES = (
    "exports/landing/index.html",
    "exports/information/index.html",
    "Xuechun Sophia Tao.html",
    "Information — Xuechun Sophia Tao.html",
)

DEFAULT_CONCURRENCY = 6
DEFAULT_MAX_RETRIES = 3


@dataclass
class PipelineConfig:
    """Locations of every pipeline input and output, relative to ``root``."""

    root: Path = field(default_factory=Path.cwd)
    export_sources: Sequence[str] = DEFAULT_EXPORT_SOURCES
    state_path: str = "data/cargo-state.json"
    asset_manifest_path: str = "data/assets.manifest.json"
    download_report_path: str = "data/assets.download-report.json"
    route_manifest_path: str = "data/routes.manifest.json"
    assets_root: str = "public/assets/cargo"
    fallback_url: Optional[str] = FALLBACK_STATE_URL
    homepage_fallback_set_id: str = HOMEPAGE_FALLBACK_SET_ID
    bio_fallback_set_id: str = BIO_FALLBACK_SET_ID
    bio_set_slug: str = BIO_SET_SLUG
    homepage_fallback_slug: str = HOMEPAGE_FALLBACK_SLUG

    def resolve(self, relative: str) -> Path:
        return (self.root / relative).resolve()

    def existing_sources(self) -> List[Path]:
        """Return the conventional export documents that exist, de-duplicated."""
        found: List[Path] = []
        for candidate in self.export_sources:
            path = self.resolve(candidate)
            if path.exists() and path not in found:
                found.append(path)
        return found


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %d", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s=%d must be at least 1; using %d", name, value, default)
        return default
    return value


@dataclass
class DownloadConfig:
    """Settings controlling the asset download worker pool."""

    concurrency: int = DEFAULT_CONCURRENCY
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_seconds: float = 0.5
    request_timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> "DownloadConfig":
        return cls(
            concurrency=_env_int("DOWNLOAD_CONCURRENCY", DEFAULT_CONCURRENCY),
            max_retries=_env_int("DOWNLOAD_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        )
