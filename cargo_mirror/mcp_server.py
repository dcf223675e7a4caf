"""MCP server exposing the export pipeline as tools."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import PipelineConfig
from .pipeline import run_assets, run_extract, run_routes
from .site_data import SiteData

logger = logging.getLogger("cargo_mirror.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="cargo-mirror")


def _config_for(project_dir: str) -> PipelineConfig:
    root = Path(project_dir).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Project directory does not exist: {root}")
    return PipelineConfig(root=root.resolve())


@mcp.tool()
def build_manifests(project_dir: str) -> str:
    """Extract state and rebuild the asset and route manifests for a project."""
    config = _config_for(project_dir)
    state = run_extract(config)
    assets = run_assets(config)
    routes = run_routes(config)
    return json.dumps(
        {
            "pages": len(state["pages"]["byId"]),
            "sets": len(state["sets"]["byId"]),
            "assets": assets["total"],
            "routes": routes["routeSlugs"],
        }
    )


@mcp.tool()
def resolve_slug(project_dir: str, slug: str) -> str:
    """Return the local route path a page or set slug resolves to."""
    site = SiteData.load(_config_for(project_dir))
    return site.resolve_internal_href(slug) or ""


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
