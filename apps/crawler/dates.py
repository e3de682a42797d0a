# =============================================================================
# 模块: apps/crawler/dates.py
# 功能: 竞赛日期字符串的归一化解析器
# 架构角色: Extractor 与 Validator 共用的小型纯函数集合。
#   各平台的日期格式差异很大：
#   - 绝对日期："2025-09-21 14:59"、"2025/09/21"、"Sep 21, 2025"、ISO 8601
#   - 相对日期："5 days left"、"in 2 weeks"、"ends in 3 days"
#   - 中文日期："2025年9月21日"、"截止时间：2025年9月21日 23:59"
#   所有解析结果统一为 UTC 的 ISO 8601 字符串；无法解析时返回 None，绝不抛出异常。
# =============================================================================
"""Date normalisation helpers for scraped contest data."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

# 常见的日期前缀，如 "Deadline:"、"截止时间："
_PREFIX_RE = re.compile(
    r"^\s*(?:deadline|ends?|closes?|due|截止时间|截止日期|截止|结束时间)\s*[:：]?\s*",
    re.IGNORECASE,
)
_CHINESE_RE = re.compile(
    r"(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日(?:\s*(\d{1,2})[:：](\d{2}))?"
)
_YMD_HM_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[\sT]+(\d{1,2}):(\d{2})(?::(\d{2}))?)?$")
_RELATIVE_LEFT_RE = re.compile(
    r"(\d+)\s*(hours?|hrs?|days?|weeks?|months?)\s*(?:left|remaining|to go)",
    re.IGNORECASE,
)
_RELATIVE_IN_RE = re.compile(
    r"(?:in|ends in|closes in)\s+(\d+)\s*(hours?|hrs?|days?|weeks?|months?)",
    re.IGNORECASE,
)
_RELATIVE_CN_RE = re.compile(r"(?:剩余|还剩)\s*(\d+)\s*(小时|天|周|个月)")
_PRIZE_RE = re.compile(r"([$€£¥]?)\s*(\d+(?:\.\d+)?)\s*([kKmM])\b")

_CN_UNITS = {"小时": "hours", "天": "days", "周": "weeks", "个月": "months"}


def _to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def _strip_prefix(text: str) -> str:
    return _PREFIX_RE.sub("", text.strip()).strip()


def _shift(now: datetime, amount: int, unit: str) -> datetime:
    unit = unit.lower()
    if unit.startswith(("hour", "hr")):
        return now + timedelta(hours=amount)
    if unit.startswith("day"):
        return now + timedelta(days=amount)
    if unit.startswith("week"):
        return now + timedelta(weeks=amount)
    return now + relativedelta(months=amount)


def parse_chinese_date(text: Optional[str]) -> Optional[str]:
    """Parse ``YYYY年MM月DD日`` (optionally followed by ``HH:MM``).

    Returns:
        Optional[str]: ISO 8601 UTC string or None.
    """
    if not text:
        return None
    match = _CHINESE_RE.search(text)
    if not match:
        return None
    year, month, day, hour, minute = match.groups()
    try:
        dt = datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0))
    except ValueError:
        return None
    return _to_iso(dt)


def parse_relative_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """Parse relative phrases such as "5 days left" or "in 2 weeks".

    Args:
        text: Raw date text.
        now: Reference time (defaults to current UTC time).

    Returns:
        Optional[str]: ISO 8601 UTC string or None.
    """
    if not text:
        return None
    now = now or datetime.now(timezone.utc)
    for pattern in (_RELATIVE_LEFT_RE, _RELATIVE_IN_RE):
        match = pattern.search(text)
        if match:
            return _to_iso(_shift(now, int(match.group(1)), match.group(2)))
    match = _RELATIVE_CN_RE.search(text)
    if match:
        return _to_iso(_shift(now, int(match.group(1)), _CN_UNITS[match.group(2)]))
    return None


def parse_absolute_date(text: Optional[str]) -> Optional[str]:
    """Parse absolute date strings.

    依次尝试 "YYYY-MM-DD[ HH:MM]" 这类常见格式和 dateutil 通用解析（非 fuzzy 模式）。

    Returns:
        Optional[str]: ISO 8601 UTC string or None.
    """
    if not text:
        return None
    cleaned = _strip_prefix(text)
    if not cleaned:
        return None

    match = _YMD_HM_RE.match(cleaned)
    if match:
        year, month, day, hour, minute, second = match.groups()
        try:
            return _to_iso(datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
            ))
        except ValueError:
            return None

    # 纯数字（如 "5"）交给 dateutil 会被解释为当月某日，不接受
    if not re.search(r"[A-Za-z]{3,}|\d{4}", cleaned):
        return None
    try:
        return _to_iso(date_parser.parse(cleaned))
    except (ValueError, OverflowError, TypeError):
        return None


def normalize_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """Normalise any supported date notation to ISO 8601 UTC.

    按 中文日期 -> 相对日期 -> 绝对日期 的顺序尝试，全部失败返回 None。
    任何异常都在此处吞掉并记录 debug 日志（解析失败只是数据缺失，不是错误）。

    Args:
        text: Raw date text from a page.
        now: Reference time for relative phrases.

    Returns:
        Optional[str]: ISO 8601 UTC string or None.
    """
    if not text or not isinstance(text, str):
        return None
    try:
        return (
            parse_chinese_date(text)
            or parse_relative_date(text, now)
            or parse_absolute_date(text)
        )
    except Exception as e:
        logger.debug(f"Unparseable date {text!r}: {e}")
        return None


def is_parseable(text: Optional[str]) -> bool:
    return normalize_date(text) is not None


def normalize_prize(text: Optional[str]) -> Optional[str]:
    """Expand ``k``/``m`` suffixes in prize strings.

    示例: "$10k" -> "$10,000"，"1.5M USD" -> "1,500,000 USD"
    """
    if not text:
        return None
    cleaned = " ".join(text.split())
    if not cleaned:
        return None

    def _expand(match: re.Match) -> str:
        symbol, number, suffix = match.groups()
        factor = 1_000 if suffix.lower() == "k" else 1_000_000
        return f"{symbol}{int(round(float(number) * factor)):,}"

    return _PRIZE_RE.sub(_expand, cleaned)


# 统一的状态取值
STATUS_VALUES = ("active", "upcoming", "ended", "cancelled")

# 按顺序匹配，"Opening soon" 先命中 upcoming 而不是 active
_STATUS_LABELS = (
    ("cancelled", ("cancelled", "canceled", "已取消")),
    ("ended", ("ended", "closed", "finished", "completed", "past", "已结束")),
    ("upcoming", ("upcoming", "coming soon", "opening soon", "not started", "starts in", "未开始", "即将开始")),
    ("active", ("active", "open", "ongoing", "live", "running", "in progress", "进行中", "报名中")),
)
_STATUS_PATTERNS = tuple(
    (status, re.compile("|".join(rf"(?<![a-z]){re.escape(label)}(?![a-z])" for label in labels)))
    for status, labels in _STATUS_LABELS
)


def normalize_status(text: Optional[str]) -> Optional[str]:
    """Map a site's status badge text to ``active|upcoming|ended|cancelled``.

    无法识别的文案返回 None，调用方应把原文保存在 metadata 中。

    Examples:
        "Open" -> "active", "报名中" -> "active", "Coming soon" -> "upcoming",
        "Voting" -> None
    """
    if not text or not isinstance(text, str):
        return None
    lowered = " ".join(text.split()).lower()
    if lowered in STATUS_VALUES:
        return lowered
    for status, pattern in _STATUS_PATTERNS:
        if pattern.search(lowered):
            return status
    return None
