"""Crawler test fixtures."""

from __future__ import annotations

import copy

import pytest

from apps.crawler.registry import SourceRegistry

BUILTIN_DISABLED = {
    "modelscope": {"enabled": False},
    "civitai": {"enabled": False},
    "openart": {"enabled": False},
    "kaggle": {"enabled": False},
}

DEMO_SOURCE = {
    "display_name": "Demo",
    "base_url": "https://demo.example",
    "list_url": "https://demo.example/contests",
    "domain": "demo.example",
    "delay": 0,
    "max_retries": 1,
    "rules": {
        "item": ".card",
        "title": "h3",
        "description": "p",
        "deadline": ".deadline",
        "link": {"selector": "a[href]", "attr": "href"},
    },
}

DEMO_LISTING = """
<html><body>
  <div class="card"><h3>Alpha Vision Cup</h3><p>Short</p>
    <span class="deadline">2030-01-01</span><a href="/c/alpha">go</a></div>
  <div class="card"><h3>Beta NLP Sprint</h3><p>Text task</p><a href="/c/beta">go</a></div>
</body></html>
"""


@pytest.fixture
def demo_source() -> dict:
    """Config-only source definition served by the fake fetchers."""
    return copy.deepcopy(DEMO_SOURCE)


@pytest.fixture
def demo_listing() -> str:
    return DEMO_LISTING


@pytest.fixture
def make_registry():
    """Factory: registry with built-in platforms disabled plus the given sources."""
    def factory(**sources) -> SourceRegistry:
        overrides = dict(BUILTIN_DISABLED)
        overrides.update(sources)
        return SourceRegistry(overrides=overrides)
    return factory


@pytest.fixture
def demo_registry(make_registry, demo_source) -> SourceRegistry:
    return make_registry(demo=demo_source)
