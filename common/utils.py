# =============================================================================
# 模块: common/utils.py
# 功能: 通用日期时间与哈希工具函数集
# 架构角色: 作为基础工具层，被爬虫（日期归一化）、处理器（身份键）、
#   存储（快照文件名）和流水线（运行 ID）等模块使用。
#
# 设计决策:
#   - 所有时间操作默认使用 UTC 时区
#   - 函数保持简洁无状态，便于测试和复用
# =============================================================================
from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return the current UTC time.

    Returns:
        datetime: Current UTC datetime with timezone info.
    """
    return datetime.now(timezone.utc)


def today_str(timezone_name: str | None = None) -> str:
    """Return today's date string in ISO format.

    Args:
        timezone_name: Optional timezone name (e.g. "Asia/Shanghai").

    Returns:
        str: ISO date string, e.g. "2024-01-15".
    """
    tz = ZoneInfo(timezone_name) if timezone_name else timezone.utc
    return datetime.now(tz).date().isoformat()


def utc_today_str() -> str:
    return today_str("UTC")


def iso_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return utc_now().isoformat()


def parse_iso(value: Any) -> datetime | None:
    """Parse an ISO 8601 string into an aware UTC datetime.

    解析 ISO 8601 字符串；无时区信息时视为 UTC。无法解析时返回 None。

    Args:
        value: ISO string (``Z`` suffix accepted) or datetime.

    Returns:
        datetime | None: Aware datetime or None.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sha256_hexdigest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonical_json(obj: Any) -> str:
    """Stable JSON encoding used for content fingerprints."""
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def run_id_from(dt: datetime | None = None) -> str:
    """Build a run/task id fragment from a timestamp.

    ISO 时间戳中的 ':' 和 '.' 替换为 '_'，可安全用于文件名和日志器名称。
    """
    return (dt or utc_now()).isoformat().replace(":", "_").replace(".", "_").replace("+", "_")
