# =============================================================================
# 模块: apps/crawler/models.py
# 功能: 爬虫产出的原始竞赛记录（RawRecord）
# 架构角色: Extractor 产出、详情页补全步骤修改、Validator 校验、Normalizer 消费。
#   同时也会作为原始快照单独持久化，供审计与 process-only 模式重放。
# 设计决策:
#   - to_dict()/from_dict() 使用磁盘快照中的 camelCase 键名
#   - merge_better() 只在新值"更好"时覆盖（更长的文本、可解析的日期），从不无条件覆盖
# =============================================================================
"""Raw contest record produced by the crawler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from apps.crawler.dates import STATUS_VALUES, is_parseable, normalize_date, normalize_status
from common.utils import iso_now

# 文本字段：新值更长时才替换
TEXT_FIELDS = ("title", "description", "prize")
# 日期字段：旧值不可解析且新值可解析时才替换
DATE_FIELDS = ("deadline", "start_date", "end_date")

_KEY_MAP = {
    "start_date": "startDate",
    "end_date": "endDate",
    "scraped_at": "scrapedAt",
}


@dataclass
class RawRecord:
    """A contest as scraped from a listing or detail page.

    Attributes:
        platform: Source name (e.g. 'modelscope').
        title: Contest title.
        description: Free text description.
        url: Absolute contest URL.
        deadline: Deadline, ISO 8601 when parseable, else the raw text.
        start_date: Start date (same convention as deadline).
        end_date: End date (same convention as deadline).
        prize: Prize description.
        status: One of active|upcoming|ended|cancelled, or None when the
            source gave no recognisable label (raw text kept in
            ``metadata["status_text"]``).
        metadata: Free-form extra fields.
        scraped_at: Capture timestamp (ISO 8601).
    """

    platform: str
    title: str = ""
    description: str = ""
    url: str = ""
    deadline: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    prize: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    scraped_at: str = field(default_factory=iso_now)

    def merge_better(self, field_name: str, value: Any) -> bool:
        """Overwrite ``field_name`` only if ``value`` is strictly better.

        Args:
            field_name: Attribute to update.
            value: Candidate value from an enrichment step.

        Returns:
            bool: True if the field was replaced.
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        current = getattr(self, field_name, None)

        if field_name in TEXT_FIELDS:
            value = " ".join(str(value).split())
            if len(value) > len(current or ""):
                setattr(self, field_name, value)
                return True
            return False

        if field_name in DATE_FIELDS:
            if current and is_parseable(current):
                return False
            normalized = normalize_date(str(value))
            if normalized is None:
                return False
            setattr(self, field_name, normalized)
            return True

        if field_name == "status":
            if current:
                return False
            self.apply_status_text(str(value))
            return self.status is not None

        # 其余字段写入 metadata，同样只接受更长的文本
        existing = self.metadata.get(field_name)
        if existing is None or (isinstance(value, str) and len(value) > len(str(existing))):
            self.metadata[field_name] = value
            return True
        return False

    def apply_status_text(self, text: Optional[str]) -> None:
        """Set ``status`` from a site's badge text.

        原文保存在 metadata["status_text"]；无法识别的文案不写入 status。
        """
        if not text or not text.strip():
            return
        cleaned = " ".join(text.split())
        self.metadata["status_text"] = cleaned
        self.status = normalize_status(cleaned)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the on-disk dictionary shape."""
        data = {
            "platform": self.platform,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "deadline": self.deadline,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "prize": self.prize,
            "status": self.status,
            "metadata": dict(self.metadata),
            "scraped_at": self.scraped_at,
        }
        return {_KEY_MAP.get(k, k): v for k, v in data.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        """Build a record from an on-disk dictionary (camelCase or snake_case)."""
        reverse = {v: k for k, v in _KEY_MAP.items()}
        kwargs = {reverse.get(k, k): v for k, v in data.items()}
        known = {f for f in cls.__dataclass_fields__}
        kwargs = {k: v for k, v in kwargs.items() if k in known}
        kwargs.setdefault("platform", "unknown")
        kwargs["title"] = kwargs.get("title") or ""
        kwargs["description"] = kwargs.get("description") or ""
        kwargs["url"] = kwargs.get("url") or ""
        kwargs["metadata"] = dict(kwargs.get("metadata") or {})
        if not kwargs.get("scraped_at"):
            kwargs.pop("scraped_at", None)
        status = kwargs.pop("status", None)
        record = cls(**kwargs)
        if status in STATUS_VALUES:
            record.status = status
        else:
            record.apply_status_text(None if status is None else str(status))
        return record
