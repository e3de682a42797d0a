"""Tests for apps/crawler/models.py: RawRecord merging and serialisation."""

from __future__ import annotations

from apps.crawler.models import RawRecord


def test_merge_better_prefers_longer_text() -> None:
    record = RawRecord(platform="civitai", description="Short")
    assert record.merge_better("description", "A much longer description") is True
    assert record.description == "A much longer description"
    assert record.merge_better("description", "Tiny") is False
    assert record.description == "A much longer description"


def test_merge_better_ignores_blank_values() -> None:
    record = RawRecord(platform="civitai", title="Title")
    assert record.merge_better("title", "   ") is False
    assert record.merge_better("title", None) is False


def test_merge_better_dates_only_replace_unparseable() -> None:
    record = RawRecord(platform="civitai", deadline="2025-09-21T00:00:00+00:00")
    assert record.merge_better("deadline", "2026-01-01") is False

    record = RawRecord(platform="civitai", deadline="soon")
    assert record.merge_better("deadline", "not a date") is False
    assert record.merge_better("deadline", "2026-01-01") is True
    assert record.deadline == "2026-01-01T00:00:00+00:00"


def test_merge_better_status_only_when_missing() -> None:
    record = RawRecord(platform="civitai")
    assert record.merge_better("status", "active") is True
    assert record.merge_better("status", "ended") is False
    assert record.status == "active"


def test_merge_better_unknown_fields_go_to_metadata() -> None:
    record = RawRecord(platform="modelscope")
    assert record.merge_better("requirements", "Python") is True
    assert record.merge_better("requirements", "Python 3.10 and PyTorch") is True
    assert record.metadata["requirements"] == "Python 3.10 and PyTorch"


def test_dict_round_trip_uses_camel_case() -> None:
    record = RawRecord(
        platform="openart",
        title="Theme: Neon",
        url="https://openart.ai/contests/neon",
        start_date="2025-09-01T00:00:00+00:00",
        metadata={"theme": "Neon"},
    )
    data = record.to_dict()
    assert "startDate" in data and "scrapedAt" in data
    restored = RawRecord.from_dict(data)
    assert restored == record


def test_from_dict_ignores_unknown_keys_and_fills_defaults() -> None:
    restored = RawRecord.from_dict({"title": None, "extra": 1})
    assert restored.platform == "unknown"
    assert restored.title == ""
    assert restored.metadata == {}


def test_merge_better_status_keeps_unknown_label_in_metadata() -> None:
    record = RawRecord(platform="openart")
    assert record.merge_better("status", "Judging") is False
    assert record.status is None
    assert record.metadata["status_text"] == "Judging"


def test_from_dict_normalises_legacy_status_text() -> None:
    restored = RawRecord.from_dict({"platform": "openart", "status": "Open"})
    assert restored.status == "active"
    assert restored.metadata["status_text"] == "Open"
    assert RawRecord.from_dict({"platform": "openart", "status": "ended"}).metadata == {}
