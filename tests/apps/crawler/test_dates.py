"""Tests for apps/crawler/dates.py: date and prize normalisation.

日期与奖金字符串归一化测试。
"""

from __future__ import annotations

from datetime import datetime, timezone

from apps.crawler.dates import (
    is_parseable,
    normalize_date,
    normalize_prize,
    normalize_status,
    parse_chinese_date,
    parse_relative_date,
)

NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


class TestNormalizeDate:
    """Absolute, relative and Chinese notations."""

    def test_iso_date(self):
        assert normalize_date("2025-09-21") == "2025-09-21T00:00:00+00:00"

    def test_date_with_time_and_slashes(self):
        assert normalize_date("2025/09/21 14:59") == "2025-09-21T14:59:00+00:00"

    def test_prefix_is_stripped(self):
        assert normalize_date("Deadline: 2025-09-21") == "2025-09-21T00:00:00+00:00"

    def test_english_month_name(self):
        assert normalize_date("Sep 21, 2025") == "2025-09-21T00:00:00+00:00"

    def test_chinese_date(self):
        assert normalize_date("截止时间：2025年9月21日 23:59") == "2025-09-21T23:59:00+00:00"
        assert parse_chinese_date("2025年9月21日") == "2025-09-21T00:00:00+00:00"

    def test_relative_days_left(self):
        assert normalize_date("5 days left", now=NOW) == "2025-09-06T12:00:00+00:00"

    def test_relative_in_weeks(self):
        assert parse_relative_date("ends in 2 weeks", now=NOW) == "2025-09-15T12:00:00+00:00"

    def test_relative_chinese(self):
        assert parse_relative_date("剩余 3 天", now=NOW) == "2025-09-04T12:00:00+00:00"

    def test_unparseable_returns_none(self):
        assert normalize_date("soon") is None
        assert normalize_date("5") is None
        assert normalize_date("") is None
        assert normalize_date(None) is None
        assert is_parseable("whenever") is False

    def test_timezone_is_converted_to_utc(self):
        assert normalize_date("2025-09-21T08:00:00+08:00") == "2025-09-21T00:00:00+00:00"


class TestNormalizePrize:
    def test_thousands_suffix(self):
        assert normalize_prize("$10k") == "$10,000"

    def test_millions_suffix_with_currency_word(self):
        assert normalize_prize("1.5M USD") == "1,500,000 USD"

    def test_plain_text_is_collapsed(self):
        assert normalize_prize("  Total   prize  pool ") == "Total prize pool"

    def test_empty(self):
        assert normalize_prize("") is None
        assert normalize_prize(None) is None


class TestNormalizeStatus:
    def test_english_badges(self):
        assert normalize_status("Open") == "active"
        assert normalize_status("  Ongoing ") == "active"
        assert normalize_status("Closed") == "ended"
        assert normalize_status("Canceled") == "cancelled"

    def test_upcoming_wins_over_open(self):
        assert normalize_status("Opening soon") == "upcoming"
        assert normalize_status("Coming Soon") == "upcoming"

    def test_chinese_badges(self):
        assert normalize_status("报名中") == "active"
        assert normalize_status("即将开始") == "upcoming"
        assert normalize_status("已结束") == "ended"

    def test_unknown_or_partial_words(self):
        assert normalize_status("Voting") is None
        assert normalize_status("Reopened 2 days ago") is None
        assert normalize_status("") is None
