"""High-level orchestration of the pipeline stages and their files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import requests

from .assets import build_asset_manifest
from .config import DownloadConfig, PipelineConfig
from .downloader import SessionFactory, build_download_report, download_assets
from .errors import MissingInputError, NoUsableStateError
from .routes import build_route_manifest
from .state import extract_state
from .utils import read_json, write_json

logger = logging.getLogger("cargo_mirror")


@dataclass
class DownloadSummary:
    """Counts from a download run, plus where the report was written."""

    report_path: Path
    total: int
    downloaded: int
    failed: int


def _require(config: PipelineConfig, relative: str, command: str) -> Path:
    path = config.resolve(relative)
    if not path.exists():
        raise MissingInputError(path, command)
    return path


def run_extract(
    config: PipelineConfig,
    sources: Optional[Sequence[Path]] = None,
    use_fallback: Optional[bool] = None,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """Extract and persist the canonical state.

    Explicit sources disable the network fallback unless it is requested.
    """
    explicit = bool(sources)
    paths: List[Path] = []
    for source in sources or config.existing_sources():
        path = Path(source).resolve()
        if explicit and not path.exists():
            raise MissingInputError(path, "cargo-mirror extract <export.html>")
        if path not in paths:
            paths.append(path)
    if not paths and not config.fallback_url:
        raise NoUsableStateError(
            "No Cargo export HTML found. Expected one of: " + ", ".join(config.export_sources)
        )
    if use_fallback is None:
        use_fallback = not explicit

    state = extract_state(paths, config, use_fallback=use_fallback, session=session)
    output = config.resolve(config.state_path)
    write_json(output, state)
    logger.info("Extracted Cargo state to %s", output)
    return state


def run_assets(config: PipelineConfig) -> Dict[str, Any]:
    state = read_json(_require(config, config.state_path, "cargo-mirror extract"))
    manifest = build_asset_manifest(state, config)
    output = config.resolve(config.asset_manifest_path)
    write_json(output, manifest)
    logger.info("Asset manifest written to %s", output)
    return manifest


def run_routes(config: PipelineConfig) -> Dict[str, Any]:
    state = read_json(_require(config, config.state_path, "cargo-mirror extract"))
    manifest = build_route_manifest(state, config)
    output = config.resolve(config.route_manifest_path)
    write_json(output, manifest)
    logger.info("Normalized routes written to %s", output)
    return manifest


def run_download(
    config: PipelineConfig,
    download_config: Optional[DownloadConfig] = None,
    session_factory: SessionFactory = requests.Session,
) -> DownloadSummary:
    manifest = read_json(_require(config, config.asset_manifest_path, "cargo-mirror assets"))
    download_config = download_config or DownloadConfig.from_env()
    results = download_assets(
        manifest.get("assets") or [],
        config.root,
        download_config,
        session_factory=session_factory,
    )
    report = build_download_report(results)
    output = config.resolve(config.download_report_path)
    write_json(output, report)
    logger.info("Download report written to %s", output)
    logger.info("downloaded=%d failed=%d", report["downloaded"], report["failed"])
    return DownloadSummary(output, report["total"], report["downloaded"], report["failed"])
