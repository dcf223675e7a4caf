from __future__ import annotations

import json

from cargo_mirror import cli
from conftest import export_html, make_state, page_block


def _project(write_export):
    state = make_state(
        pages={
            "P1": {
                "id": "P1",
                "purl": "first",
                "title": "First",
                "media": [{"hash": "H1", "name": "a.png", "width": 2000, "file_type": "png"}],
            },
            "I1": {"id": "I1", "purl": "information", "title": "Information"},
        },
        sets={
            "S1": {"id": "S1", "purl": "home", "title": "Home"},
            "S2": {"id": "S2", "purl": "information-1", "title": "Information"},
        },
        by_parent={"root": ["S1", "S2"], "S1": ["P1"], "S2": ["I1"]},
        site={"homepage_id": "S1", "homepage_purl": "home"},
    )
    blocks = [page_block("P0000000002", "/blog", '<p>Blog</p><media-item hash="H2"></media-item>'
                         '<img src="https://freight.cargo.site/t/original/i/H2/b.gif">')]
    return write_export("exports/landing/index.html", export_html(state, blocks))


def test_stage_without_state_fails_with_remedy(tmp_path, capsys):
    assert cli.main(["routes", "--root", str(tmp_path)]) == 1
    assert "Run `cargo-mirror extract` first" in capsys.readouterr().err


def test_download_without_manifest_fails_with_remedy(tmp_path, capsys):
    assert cli.main(["download", "--root", str(tmp_path)]) == 1
    assert "Run `cargo-mirror assets` first" in capsys.readouterr().err


def test_build_writes_state_and_manifests(tmp_path, write_export, capsys):
    _project(write_export)
    assert cli.main(["build", "--root", str(tmp_path)]) == 0

    state_text = (tmp_path / "data/cargo-state.json").read_text(encoding="utf-8")
    assert state_text.endswith("\n")
    state = json.loads(state_text)
    assert state["structure"]["byParent"]["S1"] == ["P0000000002", "P1"]
    blog = state["pages"]["byId"]["P0000000002"]
    assert blog["media"] == [
        {"hash": "H2", "name": "b.gif", "file_type": "gif", "mime_type": None, "width": None, "height": None}
    ]

    routes = json.loads((tmp_path / "data/routes.manifest.json").read_text(encoding="utf-8"))
    assert routes["routeSlugs"] == ["home", "information-1"]
    assert routes["routes"][0]["contentPageIds"] == ["P0000000002", "P1"]
    assert routes["pageSlugToSetSlug"]["blog"] == "home"
    assert set(routes["mediaByHash"]) == {"H1", "H2"}

    assets = json.loads((tmp_path / "data/assets.manifest.json").read_text(encoding="utf-8"))
    by_url = {asset["url"]: asset for asset in assets["assets"]}
    gif = by_url["https://freight.cargo.site/t/original/i/H2/b.gif"]
    assert gif["downloadUrl"] == "https://freight.cargo.site/w/720/q/65/i/H2/b.gif"
    assert sorted(gif["sources"]) == ["derived-original", "state-string"]


def test_extract_is_idempotent(tmp_path, write_export):
    source = _project(write_export)
    assert cli.main(["extract", "--root", str(tmp_path), str(source)]) == 0
    first = (tmp_path / "data/cargo-state.json").read_bytes()
    assert cli.main(["extract", "--root", str(tmp_path), str(source)]) == 0
    assert (tmp_path / "data/cargo-state.json").read_bytes() == first


def test_missing_explicit_source_is_reported(tmp_path, capsys):
    assert cli.main(["extract", "--root", str(tmp_path), str(tmp_path / "nope.html")]) == 1
    assert "nope.html" in capsys.readouterr().err
