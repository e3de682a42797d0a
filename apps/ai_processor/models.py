# =============================================================================
# 模块: apps/ai_processor/models.py
# 功能: 规范化竞赛记录（CanonicalRecord）
# 架构角色: Processor 的输出，Storage 持久化的单元，也是通知与 UI feed 的数据来源。
# 设计决策:
#   - to_dict() 使用磁盘快照的 camelCase 键名；from_dict() 同时接受两种写法
#   - fingerprint() 排除时间戳与版本号，只反映内容变化，用于版本递增判断
# =============================================================================
"""Canonical contest record."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from common.utils import canonical_json, sha256_hexdigest

CONTEST_TYPES = ("image", "video", "audio", "text", "code", "mixed")
DIFFICULTIES = ("beginner", "intermediate", "advanced")
STATUSES = ("active", "upcoming", "ended")

# 不参与内容指纹的字段
VOLATILE_FIELDS = frozenset({"processed_at", "scraped_at", "last_updated", "version"})

_KEY_MAP = {
    "start_date": "startDate",
    "end_date": "endDate",
    "recommended_tools": "recommendedTools",
    "quality_score": "qualityScore",
    "processed_at": "processedAt",
    "scraped_at": "scrapedAt",
    "last_updated": "lastUpdated",
}
_REVERSE_KEY_MAP = {v: k for k, v in _KEY_MAP.items()}
# 旧快照中的别名
_REVERSE_KEY_MAP.update({"contestType": "type", "aiTools": "recommended_tools"})


@dataclass
class CanonicalRecord:
    """Normalized, classified contest entry."""

    id: str
    title: str
    platform: str
    url: str = ""
    description: str = ""
    deadline: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    prize: Optional[str] = None
    type: str = "mixed"
    difficulty: str = "intermediate"
    summary: str = ""
    tags: List[str] = field(default_factory=list)
    recommended_tools: List[str] = field(default_factory=list)
    quality_score: int = 5
    confidence: float = 0.5
    requirements: List[str] = field(default_factory=list)
    status: str = "active"
    processed_at: str = ""
    scraped_at: str = ""
    last_updated: str = ""
    version: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk dictionary shape."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (list, dict)):
                value = type(value)(value)
            data[_KEY_MAP.get(f.name, f.name)] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalRecord":
        """Build a record from an on-disk dictionary (camelCase or snake_case)."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _REVERSE_KEY_MAP.get(key, key)
            if name in known:
                kwargs[name] = value
        kwargs.setdefault("id", "")
        kwargs.setdefault("title", "")
        kwargs.setdefault("platform", "unknown")
        for name in ("tags", "recommended_tools", "requirements"):
            kwargs[name] = list(kwargs.get(name) or [])
        kwargs["metadata"] = dict(kwargs.get("metadata") or {})
        return cls(**kwargs)

    def fingerprint(self) -> str:
        """Hash of all content fields (timestamps and version excluded)."""
        content = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in VOLATILE_FIELDS
        }
        return sha256_hexdigest(canonical_json(content))
