"""Command-line entry point for the export pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Sequence

from .config import DownloadConfig, PipelineConfig
from .errors import CargoMirrorError
from .pipeline import run_assets, run_download, run_extract, run_routes

logger = logging.getLogger("cargo_mirror.cli")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=Path.cwd(),
        type=Path,
        help="Project directory holding exports/, data/ and public/",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_download_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of download workers (default: $DOWNLOAD_CONCURRENCY or 6)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Attempts per asset (default: $DOWNLOAD_MAX_RETRIES or 3)",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn Cargo site exports into a self-hosted static site data set.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser(
        "extract", help="Merge export snapshots into data/cargo-state.json"
    )
    _add_common_arguments(extract_parser)
    extract_parser.add_argument(
        "sources",
        nargs="*",
        type=Path,
        help="Export HTML files (default: the conventional exports/ locations)",
    )
    extract_parser.add_argument(
        "--no-fallback",
        action="store_true",
        help="Never fetch the live information page",
    )

    assets_parser = subparsers.add_parser(
        "assets", help="Build data/assets.manifest.json from the state"
    )
    _add_common_arguments(assets_parser)

    download_parser = subparsers.add_parser(
        "download", help="Fetch every asset in the manifest"
    )
    _add_common_arguments(download_parser)
    _add_download_arguments(download_parser)

    routes_parser = subparsers.add_parser(
        "routes", help="Build data/routes.manifest.json from the state"
    )
    _add_common_arguments(routes_parser)

    build_parser = subparsers.add_parser(
        "build", help="Run extract, assets and routes in order"
    )
    _add_common_arguments(build_parser)
    _add_download_arguments(build_parser)
    build_parser.add_argument(
        "--download",
        action="store_true",
        help="Also download assets after building the manifests",
    )

    return parser.parse_args(argv)


def _download_config(args: argparse.Namespace) -> DownloadConfig:
    config = DownloadConfig.from_env()
    if args.concurrency is not None:
        config.concurrency = max(1, args.concurrency)
    if args.max_retries is not None:
        config.max_retries = max(1, args.max_retries)
    return config


def _run(args: argparse.Namespace) -> int:
    config = PipelineConfig(root=Path(args.root).resolve())
    start = time.perf_counter()

    if args.command == "extract":
        state = run_extract(
            config,
            sources=args.sources or None,
            use_fallback=False if args.no_fallback else None,
        )
        print(f"pages={len(state['pages']['byId'])} sets={len(state['sets']['byId'])}")
        return 0
    if args.command == "assets":
        manifest = run_assets(config)
        print(f"assets={manifest['total']}")
        return 0
    if args.command == "routes":
        manifest = run_routes(config)
        print(
            f"routes={len(manifest['routeSlugs'])} removedPages={len(manifest['removedPages'])} "
            f"media={len(manifest['mediaByHash'])}"
        )
        return 0
    if args.command == "download":
        summary = run_download(config, _download_config(args))
        print(f"downloaded={summary.downloaded} failed={summary.failed}")
        return 1 if summary.failed else 0

    run_extract(config)
    assets = run_assets(config)
    routes = run_routes(config)
    status = 0
    if args.download:
        summary = run_download(config, _download_config(args))
        status = 1 if summary.failed else 0
    logger.info(
        "Build finished in %.2fs (assets=%d, routes=%d)",
        time.perf_counter() - start,
        assets["total"],
        len(routes["routeSlugs"]),
    )
    return status


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    try:
        return _run(args)
    except CargoMirrorError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
