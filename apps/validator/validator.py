# =============================================================================
# 模块: apps/validator/validator.py
# 功能: 原始竞赛记录的规则校验与批内重复检测
# 架构角色: 流水线 Crawl 与 Process 之间的质量闸门。
#   每条记录按固定顺序执行一组校验规则，产出错误（记录无效、被排除）
#   和警告（记录有效但需关注）。
# 校验规则（顺序固定）:
#   1. required_fields      必填字段缺失为错误，推荐字段缺失为警告
#   2. url_format           URL 必须为 http/https 且包含主机名
#   3. date_format          日期不可解析为错误；截止日期已过为警告；开始晚于结束为错误
#   4. status_values        状态必须为 active/upcoming/ended/cancelled
#   5. platform_consistency 已知平台的 URL 域名必须匹配
#   6. duplicate_detection  批内 URL 完全重复或标题高度相似为警告
# =============================================================================

"""Rule-based validation of raw contest records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from apps.crawler.dates import normalize_date
from apps.crawler.models import RawRecord
from common.utils import parse_iso, utc_now
from settings import settings

logger = logging.getLogger(__name__)

VALID_STATUSES = ("active", "upcoming", "ended", "cancelled")
REQUIRED_FIELDS = ("title", "url", "platform")
RECOMMENDED_FIELDS = ("description", "deadline", "status")

# 已知平台 -> URL 域名
DEFAULT_PLATFORM_DOMAINS: Dict[str, str] = {
    "modelscope": "modelscope.cn",
    "civitai": "civitai.com",
    "openart": "openart.ai",
    "kaggle": "kaggle.com",
    "devpost": "devpost.com",
    "drivendata": "drivendata.org",
    "aicrowd": "aicrowd.com",
    "zindi": "zindi.africa",
}

# 标题长度超过该值才参与相似度比较
MIN_TITLE_LENGTH_FOR_SIMILARITY = 10


# -----------------------------------------------------------------------------
# 字符串相似度
# -----------------------------------------------------------------------------
def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (two-row dynamic programming)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # 删除
                current[j - 1] + 1,      # 插入
                previous[j - 1] + cost,  # 替换
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """``(len(longer) - distance) / len(longer)``; 1.0 for two empty strings."""
    longer = a if len(a) >= len(b) else b
    if not longer:
        return 1.0
    return (len(longer) - levenshtein(a, b)) / len(longer)


def normalize_title(title: str) -> str:
    return " ".join((title or "").split()).lower()


# -----------------------------------------------------------------------------
# 校验结果
# -----------------------------------------------------------------------------
@dataclass
class ValidationIssue:
    """A single error or warning raised by a rule."""

    field: str
    rule: str
    message: str

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "rule": self.rule, "message": self.message}


@dataclass
class RecordValidation:
    """Validation outcome of one record."""

    index: int
    record: RawRecord
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def label(self) -> str:
        return self.record.title or f"Contest #{self.index}"


@dataclass
class ValidationResult:
    """Validation outcome of a batch.

    Attributes:
        records: Per-record outcomes in input order.
        total: Number of records checked.
        valid: Records with zero errors.
        invalid: Records with at least one error.
        warning_count: Valid records with at least one warning.
    """

    records: List[RecordValidation] = field(default_factory=list)
    total: int = 0
    valid: int = 0
    invalid: int = 0
    warning_count: int = 0

    @property
    def is_valid(self) -> bool:
        return self.invalid == 0

    def valid_records(self) -> List[RawRecord]:
        return [r.record for r in self.records if r.is_valid]

    def invalid_records(self) -> List[RecordValidation]:
        return [r for r in self.records if not r.is_valid]

    def with_warnings(self) -> List[RecordValidation]:
        return [r for r in self.records if r.is_valid and r.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "invalid": self.invalid,
            "warning_count": self.warning_count,
            "is_valid": self.is_valid,
        }

    def summary(self, max_issues: int = 10) -> str:
        """Human readable summary with the top issues, for logging."""
        lines = [
            "Validation Summary:",
            f"- Total Contests: {self.total}",
            f"- Valid Contests: {self.valid}",
            f"- Invalid Contests: {self.invalid}",
            f"- Contests with Warnings: {self.warning_count}",
            f"- Overall Status: {'PASS' if self.is_valid else 'FAIL'}",
        ]
        invalid = self.invalid_records()
        if invalid:
            lines.append("Errors Found:")
            for item in invalid[:max_issues]:
                lines.append(f'- Contest "{item.label}" ({item.index}): {", ".join(map(str, item.errors))}')
        warned = self.with_warnings()
        if warned:
            lines.append("Warnings:")
            for item in warned[:max_issues]:
                lines.append(f'- Contest "{item.label}" ({item.index}): {", ".join(map(str, item.warnings))}')
        return "\n".join(lines)


Rule = Callable[[RawRecord, int, Sequence[RawRecord]], Tuple[List[ValidationIssue], List[ValidationIssue]]]


class DataValidator:
    """Validates batches of raw contest records.

    数据校验器。平台域名映射默认包含内置平台，可由数据源配置扩展。
    """

    def __init__(
        self,
        platform_domains: Optional[Mapping[str, str]] = None,
        similarity_threshold: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.platform_domains: Dict[str, str] = dict(DEFAULT_PLATFORM_DOMAINS)
        if platform_domains:
            self.platform_domains.update({k.lower(): v.lower() for k, v in platform_domains.items()})
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None else settings.title_similarity_threshold
        )
        self._now = now
        self.rules: List[Tuple[str, Rule]] = [
            ("required_fields", self._check_required_fields),
            ("url_format", self._check_url_format),
            ("date_format", self._check_dates),
            ("status_values", self._check_status),
            ("platform_consistency", self._check_platform_consistency),
            ("duplicate_detection", self._check_duplicates),
        ]

    @property
    def now(self) -> datetime:
        return self._now or utc_now()

    def validate(self, records: Sequence[RawRecord]) -> ValidationResult:
        """Run every rule against every record.

        Args:
            records: Raw records of one batch.

        Returns:
            ValidationResult: Per-record outcomes and summary counts.
        """
        result = ValidationResult(total=len(records))
        logger.info(f"Starting validation of {len(records)} raw contest(s)")

        for index, record in enumerate(records):
            outcome = RecordValidation(index=index, record=record)
            for name, rule in self.rules:
                try:
                    errors, warnings = rule(record, index, records)
                except Exception as e:
                    # 规则自身异常视为该记录的错误
                    logger.warning(f"Validation rule {name} failed on record #{index}: {e}")
                    errors, warnings = [ValidationIssue("*", name, f"Rule '{name}' failed: {e}")], []
                outcome.errors.extend(errors)
                outcome.warnings.extend(warnings)

            result.records.append(outcome)
            if outcome.errors:
                result.invalid += 1
            else:
                result.valid += 1
                if outcome.warnings:
                    result.warning_count += 1

        logger.info(
            f"Validation completed: {result.valid}/{result.total} valid, "
            f"{result.invalid} invalid, {result.warning_count} with warnings"
        )
        return result

    # -------------------------------------------------------------------------
    # 校验规则
    # -------------------------------------------------------------------------
    def _check_required_fields(self, record, index, records):
        errors = [
            ValidationIssue(name, "required_fields", f"Missing required field: {name}")
            for name in REQUIRED_FIELDS
            if not getattr(record, name, None)
        ]
        warnings = [
            ValidationIssue(name, "required_fields", f"Missing recommended field: {name}")
            for name in RECOMMENDED_FIELDS
            if not getattr(record, name, None)
        ]
        return errors, warnings

    def _check_url_format(self, record, index, records):
        if not record.url:
            return [], []
        try:
            parsed = urlparse(record.url)
        except ValueError:
            return [ValidationIssue("url", "url_format", "Invalid URL format")], []
        if parsed.scheme not in ("http", "https"):
            return [ValidationIssue("url", "url_format", "URL must start with http:// or https://")], []
        if not parsed.netloc:
            return [ValidationIssue("url", "url_format", "Invalid URL format")], []
        return [], []

    def _check_dates(self, record, index, records):
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        parsed: Dict[str, datetime] = {}

        for name in ("deadline", "start_date", "end_date"):
            value = getattr(record, name)
            if not value:
                continue
            dt = parse_iso(normalize_date(value))
            if dt is None:
                errors.append(ValidationIssue(name, "date_format", f"Invalid date format in {name}: {value}"))
                continue
            parsed[name] = dt

        deadline = parsed.get("deadline")
        if deadline is not None and deadline < self.now:
            warnings.append(ValidationIssue("deadline", "date_format", f"Deadline is in the past: {record.deadline}"))

        start, end = parsed.get("start_date"), parsed.get("end_date")
        if start is not None and end is not None and start > end:
            errors.append(ValidationIssue("start_date", "date_format", "Start date is after end date"))
        return errors, warnings

    def _check_status(self, record, index, records):
        if record.status and record.status not in VALID_STATUSES:
            return [ValidationIssue(
                "status",
                "status_values",
                f"Invalid status value: {record.status}. Must be one of: {', '.join(VALID_STATUSES)}",
            )], []
        return [], []

    def _check_platform_consistency(self, record, index, records):
        if not (record.platform and record.url):
            return [], []
        expected = self.platform_domains.get(record.platform.lower())
        if not expected:
            return [], []
        host = (urlparse(record.url).hostname or "").lower()
        if host != expected and not host.endswith("." + expected):
            return [ValidationIssue(
                "url",
                "platform_consistency",
                f"URL domain doesn't match platform: expected {expected}, got {host or 'none'}",
            )], []
        return [], []

    def _check_duplicates(self, record, index, records):
        warnings: List[ValidationIssue] = []
        if record.url and any(i != index and other.url == record.url for i, other in enumerate(records)):
            warnings.append(ValidationIssue("url", "duplicate_detection", f"Potential duplicate found by URL: {record.url}"))

        title = normalize_title(record.title)
        if len(title) > MIN_TITLE_LENGTH_FOR_SIMILARITY:
            for i, other in enumerate(records):
                if i == index:
                    continue
                other_title = normalize_title(other.title)
                if len(other_title) <= MIN_TITLE_LENGTH_FOR_SIMILARITY:
                    continue
                if similarity(title, other_title) >= self.similarity_threshold:
                    warnings.append(ValidationIssue(
                        "title",
                        "duplicate_detection",
                        "Potential duplicate found by title similarity",
                    ))
                    break
        return [], warnings
