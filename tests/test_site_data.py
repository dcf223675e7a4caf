from __future__ import annotations

import pytest

from cargo_mirror.config import PipelineConfig
from cargo_mirror.errors import MissingInputError
from cargo_mirror.site_data import SiteData, hash_from_url, is_visible_on_viewport, to_public_path

ORIGINAL = "https://freight.cargo.site/t/original/i/H1/a.png"
RESIZED = "https://freight.cargo.site/w/600/i/H2/b.png"


@pytest.fixture
def site():
    state = {"site": {"website_url": "https://example.com"}}
    routes = {
        "homepageSlug": "landing",
        "pageSlugToSetSlug": {"project-1": "landing", "about": "information-1"},
    }
    assets = {
        "assets": [
            {"url": ORIGINAL, "localPath": "public/assets/cargo/freight.cargo.site/t/original/i/H1/a.png"},
            {"url": RESIZED, "localPath": "public\\assets\\cargo\\freight.cargo.site\\w\\600\\i\\H2\\b.png"},
        ]
    }
    return SiteData(state, routes, assets)


def test_public_path_and_hash_helpers():
    assert to_public_path("public/assets/x.png") == "/assets/x.png"
    assert to_public_path("public\\assets\\x.png") == "/assets/x.png"
    assert hash_from_url(ORIGINAL) == "H1"
    assert hash_from_url("https://example.com/none") is None


def test_media_resolves_by_original_url_then_hash(site):
    assert site.resolve_media_url({"hash": "H1", "name": "a.png"}) == (
        "/assets/cargo/freight.cargo.site/t/original/i/H1/a.png"
    )
    assert site.resolve_media_url({"hash": "H2", "name": "b.png"}) == (
        "/assets/cargo/freight.cargo.site/w/600/i/H2/b.png"
    )
    assert site.resolve_media_url({"hash": "H9", "name": "z.png"}) is None


def test_route_aliases(site):
    assert site.to_route_path("landing") == "/home"
    assert site.to_route_path("information-1") == "/bio"
    assert site.to_set_slug_from_route_slug("bio") == "information-1"
    assert site.to_set_slug_from_route_slug("other") == "other"


@pytest.mark.parametrize(
    "href,expected",
    [
        (None, "/home"),
        ("#", "/home"),
        ("mailto:a@b.c", None),
        ("https://elsewhere.org/x", None),
        ("https://example.com/project-1", "/home"),
        ("/about?tab=2", "/bio?tab=2"),
        ("unknown-page", "/unknown-page"),
        ("/", "/home"),
    ],
)
def test_internal_hrefs_map_to_local_routes(site, href, expected):
    assert site.resolve_internal_href(href) == expected


def test_viewport_visibility():
    assert is_visible_on_viewport({}, True)
    assert is_visible_on_viewport({"pin_options": {"screen_visibility": "mobile"}}, True)
    assert not is_visible_on_viewport({"pin_options": {"screen_visibility": "mobile"}}, False)
    assert not is_visible_on_viewport({"pin_options": {"screen_visibility": "desktop"}}, True)


def test_load_requires_every_input(tmp_path):
    with pytest.raises(MissingInputError, match="cargo-mirror extract"):
        SiteData.load(PipelineConfig(root=tmp_path))
