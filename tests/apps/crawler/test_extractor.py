"""Tests for apps/crawler/extractor.py: rule-driven extraction.

基于规则的 HTML 抽取测试。
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from apps.crawler.extractor import ExtractionRules, FieldStrategy, extract, extract_detail
from apps.crawler.platforms import kaggle, openart
from apps.validator import DataValidator

LISTING = """
<html><body>
  <div class="card">
    <h3>Vision Challenge</h3>
    <p>Detect objects in street scenes</p>
    <span class="deadline">2030-01-15</span>
    <span class="meta">12 days left</span>
    <span class="prize">$10k</span>
    <a href="/competitions/1">more</a>
  </div>
  <div class="card">
    <p>Only a description here</p>
    <span class="deadline">whenever</span>
  </div>
  <div class="card"><span>nothing useful</span></div>
</body></html>
"""


@pytest.fixture
def rules() -> ExtractionRules:
    return ExtractionRules.from_config({
        "item": [".does-not-exist", ".card"],
        "title": "h3",
        "description": ["p"],
        "deadline": [".deadline"],
        "prize": ".prize",
        "link": {"selector": "a[href]", "attr": "href"},
    })


class TestExtract:
    def test_emits_records_with_title_or_description(self, rules):
        records = extract(LISTING, rules, "https://example.com", "demo")
        assert [r.title for r in records] == ["Vision Challenge", ""]
        assert records[1].description == "Only a description here"

    def test_resolves_links_and_normalises_fields(self, rules):
        record = extract(LISTING, rules, "https://example.com", "demo")[0]
        assert record.platform == "demo"
        assert record.url == "https://example.com/competitions/1"
        assert record.deadline == "2030-01-15T00:00:00+00:00"
        assert record.prize == "$10,000"

    def test_unparseable_date_is_missing(self, rules):
        record = extract(LISTING, rules, "https://example.com", "demo")[1]
        assert record.deadline is None
        assert record.metadata["deadline_text"] == "whenever"

    def test_strict_platforms_require_title_and_url(self, rules):
        records = extract(LISTING, rules, "https://example.com", "demo", require_title_and_url=True)
        assert [r.title for r in records] == ["Vision Challenge"]

    def test_empty_content(self, rules):
        assert extract("", rules, "https://example.com", "demo") == []

    def test_item_anchor_uses_own_href(self):
        rules = ExtractionRules.from_config({"item": "a.event", "title": "h3"})
        html = '<a class="event" href="/events/42"><h3>Event</h3></a>'
        [record] = extract(html, rules, "https://civitai.com", "civitai")
        assert record.url == "https://civitai.com/events/42"


class TestFieldStrategy:
    def test_regex_strategy_returns_group(self):
        rules = ExtractionRules.from_config({
            "item": ".card",
            "title": "h3",
            "deadline": {"regex": r"(\d+\s*days left)"},
        })
        record = extract(LISTING, rules, "https://example.com", "demo")[0]
        assert record.deadline is not None

    def test_from_config_variants(self):
        assert FieldStrategy.from_config("h3").kind == "text"
        assert FieldStrategy.from_config({"attr": "href"}).kind == "attr"
        assert FieldStrategy.from_config({"regex": "x"}).kind == "regex"
        with pytest.raises(ValueError):
            FieldStrategy.from_config(42)

    def test_rules_validate(self):
        assert ExtractionRules.from_config({"item": ".card"}).validate() == [
            "title selector is required",
            "link selector is required",
        ]


def test_extract_detail_first_non_empty_strategy_wins():
    html = "<html><body><div class='full'>Full description</div><div class='prize'>$5k</div></body></html>"
    values = extract_detail(html, {
        "description": [".missing", ".full"],
        "prize": ".prize",
        "requirements": [".nope"],
    })
    assert values == {"description": "Full description", "prize": "$5k"}


OPENART_LISTING = """
<div class="contest-card">
  <h3 class="contest-title">Neon Dreams Contest</h3>
  <p class="contest-description">Create neon artwork</p>
  <span class="contest-deadline">2030-01-15</span>
  <span class="contest-status">Open</span>
  <a href="/contests/neon-dreams">enter</a>
</div>
<div class="contest-card">
  <h3 class="contest-title">Pixel Worlds Contest</h3>
  <p class="contest-description">Retro pixel scenes</p>
  <span class="contest-deadline">2030-02-01</span>
  <span class="contest-status">Voting</span>
  <a href="/contests/pixel-worlds">enter</a>
</div>
"""


class TestStatusBadges:
    """Badge text must not reach the validator as a raw status value."""

    def test_badges_map_to_status_values(self):
        config = openart.build_config()
        records = extract(OPENART_LISTING, config.rules, config.base_url, "openart")
        assert [r.status for r in records] == ["active", None]
        assert [r.metadata["status_text"] for r in records] == ["Open", "Voting"]

    def test_extracted_badges_pass_validation(self):
        config = openart.build_config()
        records = extract(OPENART_LISTING, config.rules, config.base_url, "openart")
        result = DataValidator(now=datetime(2025, 9, 1, tzinfo=timezone.utc)).validate(records)
        assert result.invalid_records() == []
        assert len(result.valid_records()) == 2


KAGGLE_RESPONSE = [
    {
        "ref": "llm-reasoning-prize",
        "url": "https://www.kaggle.com/competitions/llm-reasoning-prize",
        "title": "LLM Reasoning Prize",
        "description": "Solve olympiad problems with open models",
        "deadline": "2030-03-01T23:59:00Z",
        "reward": "$50k",
        "category": "Featured",
        "organizationName": "Reasoning Labs",
        "tags": [{"name": "nlp"}, {"name": "reasoning"}],
        "teamCount": 812,
    },
    {
        "ref": "tabular-playground",
        "title": "Tabular Playground",
        "description": "Monthly tabular practice",
        "deadline": "2030-02-01T00:00:00Z",
        "category": "Playground",
        "tags": [],
    },
    {"ref": "no-title"},
]


class TestJsonRules:
    def test_kaggle_listing_is_extracted(self):
        config = kaggle.build_config()
        records = extract(
            json.dumps(KAGGLE_RESPONSE), config.rules, config.base_url, "kaggle",
            require_title_and_url=config.require_title_and_url,
        )
        assert [r.title for r in records] == ["LLM Reasoning Prize", "Tabular Playground"]
        first, second = records
        assert first.url == "https://www.kaggle.com/competitions/llm-reasoning-prize"
        assert first.deadline == "2030-03-01T23:59:00+00:00"
        assert first.prize == "$50,000"
        assert first.metadata["organizer"] == "Reasoning Labs"
        assert first.metadata["tags"] == "nlp, reasoning"
        assert first.metadata["team_count"] == "812"
        # 没有 url 字段时由 ref 与模板拼出链接
        assert second.url == "https://www.kaggle.com/competitions/tabular-playground"
        assert "tags" not in second.metadata

    def test_wrapped_item_list_is_found(self):
        config = kaggle.build_config()
        body = json.dumps({"competitions": KAGGLE_RESPONSE[:1]})
        records = extract(body, config.rules, config.base_url, "kaggle")
        assert [r.title for r in records] == ["LLM Reasoning Prize"]

    def test_nested_path_and_epoch_dates(self):
        rules = ExtractionRules.from_config({
            "format": "json",
            "item": "Data.Races",
            "title": {"key": "Name"},
            "deadline": {"key": "Times.End", "epoch": True},
            "link": {"key": "Id", "template": "/race/{}"},
        })
        body = json.dumps({"Data": {"Races": [{"Id": 7, "Name": "Reef Survey", "Times": {"End": 1893456000000}}]}})
        (record,) = extract(body, rules, "https://races.example", "demo")
        assert record.url == "https://races.example/race/7"
        assert record.deadline == "2030-01-01T00:00:00+00:00"

    def test_invalid_json_yields_no_records(self):
        config = kaggle.build_config()
        assert extract("<html>rate limited</html>", config.rules, config.base_url, "kaggle") == []

    def test_html_strategy_cannot_read_json_items(self):
        rules = ExtractionRules.from_config({"format": "json", "title": "h3", "link": {"key": "url"}})
        assert extract(json.dumps([{"url": "/x"}]), rules, "https://e.example", "demo") == []

    def test_json_rules_validate_without_item(self):
        rules = ExtractionRules.from_config({"format": "json", "title": {"key": "t"}, "link": {"key": "u"}})
        assert rules.validate() == []
        assert ExtractionRules.from_config({"format": "xml", "item": "x", "title": "h", "link": "a"}).validate() == [
            "unknown rules format: xml"
        ]
