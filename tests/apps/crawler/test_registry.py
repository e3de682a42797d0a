"""Tests for apps/crawler/registry.py: source configuration and jobs.

数据源注册表测试。
"""

from __future__ import annotations

from apps.crawler.registry import PlatformRegistry, SourceConfig, SourceRegistry, validate_config
from common.config_loader import get_sources_config
from settings import settings


class TestSourceRegistry:
    def test_builtin_platforms_are_registered(self):
        registry = SourceRegistry(overrides={})
        assert {"modelscope", "civitai", "openart"} <= set(registry.enabled_names())
        assert set(PlatformRegistry.names()) >= {"modelscope", "civitai", "openart"}

    def test_overrides_are_deep_merged(self):
        registry = SourceRegistry(overrides={"openart": {"delay": 5.5, "rules": {"title": "h1"}}})
        config = registry.get("openart")
        assert config.delay == 5.5
        # 未覆盖的规则字段保持默认
        assert config.rules.item == (".contest-card", "[class*='contest-card']")
        assert config.rules.strategies("title")[0].selector == "h1"

    def test_disabled_source_is_not_crawled(self):
        registry = SourceRegistry(overrides={"civitai": {"enabled": False}})
        assert "civitai" not in registry.enabled_names()
        assert registry.get("civitai") is not None

    def test_config_only_source_is_loaded(self, demo_registry):
        assert demo_registry.enabled_names() == ["demo"]
        assert demo_registry.postprocessor("demo") is None
        assert demo_registry.domain_map()["demo"] == "demo.example"

    def test_invalid_source_is_skipped(self, make_registry):
        registry = make_registry(broken={"base_url": "ftp://nope", "rules": {"item": ".x"}})
        assert registry.get("broken") is None

    def test_generate_jobs(self, demo_registry):
        jobs = demo_registry.generate_jobs()
        assert len(jobs) == 1
        job = jobs[0]
        assert job.source == "demo"
        assert job.url == "https://demo.example/contests"
        assert job.task_id.startswith("demo_")
        assert demo_registry.generate_jobs("missing") == []

    def test_describe(self, demo_registry):
        names = {d["name"] for d in demo_registry.describe()}
        assert names == {"modelscope", "civitai", "openart", "kaggle", "demo"}


def test_validate_config_reports_problems():
    config = SourceConfig.from_dict("x", {"base_url": "example.com", "list_url": "", "rules": {"item": ".c"}})
    errors = validate_config(config)
    assert "list_url is required" in errors
    assert any(e.startswith("base_url must start with") for e in errors)
    assert "title selector is required" in errors


def test_source_config_from_dict_defaults(demo_source):
    config = SourceConfig.from_dict("demo", demo_source)
    assert config.display_name == "Demo"
    assert config.max_detail_pages == 10
    assert config.render is False


class TestCredentials:
    def test_kaggle_disabled_without_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "kaggle_username", "")
        monkeypatch.setattr(settings, "kaggle_key", "")
        registry = SourceRegistry(overrides={})
        config = registry.get("kaggle")
        assert config is not None
        assert config.enabled is False
        assert "kaggle" not in registry.enabled_names()
        assert config.basic_auth() is None

    def test_kaggle_enabled_with_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "kaggle_username", "alice")
        monkeypatch.setattr(settings, "kaggle_key", "s3cret")
        registry = SourceRegistry(overrides={})
        config = registry.get("kaggle")
        assert "kaggle" in registry.enabled_names()
        assert config.basic_auth() == ("alice", "s3cret")
        assert config.accept_json is True
        assert config.params["sortBy"] == "latestDeadline"

    def test_credentials_must_name_two_fields(self, demo_source):
        config = SourceConfig.from_dict("demo", dict(demo_source, credentials=["kaggle_key"]))
        assert "credentials must name exactly two settings fields (username, key)" in validate_config(config)


def test_bundled_config_only_sources_are_valid():
    overrides = get_sources_config()
    registry = SourceRegistry(overrides=overrides)
    for name in ("devpost", "drivendata", "aicrowd", "zindi"):
        config = registry.get(name)
        assert config is not None, name
        assert validate_config(config) == []
        assert registry.postprocessor(name) is None
    assert registry.domain_map()["zindi"] == "zindi.africa"
    assert registry.get("devpost").detail_rules["description"] == ["#challenge-overview", ".hyphenate"]
