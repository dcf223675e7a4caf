from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

import pytest

from cargo_mirror.config import STATE_MARKER


def page_block(
    page_id: str,
    page_url: str,
    content: Optional[str],
    classes: str = "page",
    local_css: str = "",
) -> str:
    body = f"<bodycopy>{content}</bodycopy>" if content is not None else "<div>empty</div>"
    css = f"<style>{local_css}</style>" if local_css else ""
    return (
        f'<div id="{page_id}" page-url="{page_url}" class="{classes}">'
        f'<div class="page-layout"><div class="page-content">{body}</div></div>'
        f'{css}<style id="mobile-offset-styles-{page_id}">.m{{}}</style></div>'
    )


def export_html(state: Optional[dict], blocks: Iterable[str] = ()) -> str:
    script = f"<script>{STATE_MARKER}{json.dumps(state)}</script>" if state is not None else ""
    return f"<html><head>{script}</head><body>{''.join(blocks)}</body></html>"


def make_state(
    pages: Optional[dict] = None,
    sets: Optional[dict] = None,
    by_parent: Optional[dict] = None,
    site: Optional[dict] = None,
    stylesheet: str = "",
) -> dict:
    return {
        "site": site or {},
        "pages": {"byId": pages or {}},
        "sets": {"byId": sets or {}},
        "media": {"byId": {}},
        "structure": {"byParent": by_parent or {}, "bySort": {}},
        "css": {"stylesheet": stylesheet},
    }


@pytest.fixture
def write_export(tmp_path: Path):
    def _write(relative: str, html: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        return path

    return _write


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", text: str = "") -> None:
        self.status_code = status_code
        self.content = content
        self.text = text

    def raise_for_status(self) -> None:
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


@pytest.fixture(autouse=True)
def _restore_root_logging():
    # The CLI reconfigures the root logger with force=True.
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
