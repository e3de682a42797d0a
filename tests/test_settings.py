"""Tests for settings.py: YAML defaults and environment overrides."""

from __future__ import annotations

from settings import Settings, load_yaml_config


def test_yaml_defaults_loaded():
    config = load_yaml_config()
    assert config["app"]["name"] == "ContestRadar"
    assert "crawler" in config and "storage" in config


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CRAWLER_MAX_CONCURRENCY", "7")
    monkeypatch.setenv("DATA_RETENTION_DAYS", "14")
    monkeypatch.setenv("VALIDATION_ENABLED", "false")

    s = Settings()

    assert s.max_concurrency == 7
    assert s.data_retention_days == 14
    assert s.enable_validation is False


def test_concurrency_floor(monkeypatch):
    monkeypatch.setenv("CRAWLER_MAX_CONCURRENCY", "0")
    monkeypatch.setenv("AI_BATCH_SIZE", "-3")

    s = Settings()

    assert s.max_concurrency == 1
    assert s.ai_batch_size == 1


def test_email_recipients_parsed(monkeypatch):
    monkeypatch.setenv("EMAIL_TO", " a@example.com, ,b@example.com ")
    assert Settings().email_to_list == ["a@example.com", "b@example.com"]


def test_default_data_dir_is_absolute(monkeypatch):
    monkeypatch.delenv("DATA_DIR", raising=False)
    s = Settings()
    assert s.data_dir.is_absolute()
