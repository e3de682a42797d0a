# =============================================================================
# 竞赛处理服务层模块
# =============================================================================
# 本模块把校验通过的 RawRecord 转换为 CanonicalRecord：
#   1. 身份键：c_ + sha256(canonical_json([platform, url or title]))[:16]，纯函数
#   2. 分类：AI Provider 优先，任何失败回退到关键词分类器
#   3. 标签精炼、状态推导、参赛要求提取
#   4. 版本号：与上一次聚合快照比较内容指纹，变化时递增
# 批处理：每批 batch_size 条并发处理，批内条目按 item_delay 错开发起请求。
# =============================================================================

"""Contest processing service layer."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from apps.ai_processor.models import CanonicalRecord
from apps.ai_processor.processors.rule_classifier import classify_by_keywords
from apps.ai_processor.processors.tags import extract_requirements, refine_tags
from apps.ai_processor.providers.base import BaseAIProvider
from apps.crawler.dates import normalize_date
from apps.crawler.models import RawRecord
from common.utils import canonical_json, iso_now, parse_iso, sha256_hexdigest, utc_now
from settings import settings

logger = logging.getLogger(__name__)

UPCOMING_MARKERS = ("upcoming", "未开始", "即将开始")
ENDED_MARKERS = ("ended", "closed", "结束", "已结束")


def get_ai_provider(provider_name: str | None = None) -> BaseAIProvider | None:
    """Get a classification provider by name.

    Args:
        provider_name: Provider name override. Defaults to settings.ai_provider.

    Returns:
        BaseAIProvider | None: None for ``rule`` (keyword classifier only).
    """
    provider_name = (provider_name or settings.ai_provider or "").lower()
    if provider_name == "openai":
        from .providers.openai_provider import OpenAIProvider
        return OpenAIProvider()
    if provider_name not in ("rule", "none", ""):
        logger.warning(f"Unknown AI provider {provider_name!r}, using keyword classifier only")
    return None


def make_identity_key(platform: str, url_or_title: str) -> str:
    """Deterministic record id: ``c_`` + first 16 hex chars of sha256.

    哈希输入是 JSON 编码的二元组，避免 ("a_b", "c") 与 ("a", "b_c") 拼接后相同。
    """
    return "c_" + sha256_hexdigest(canonical_json([platform, url_or_title or ""]))[:16]


def derive_status(raw: RawRecord, now: Optional[datetime] = None) -> str:
    """Derive ``active|upcoming|ended`` for a raw record.

    显式状态字符串优先；没有状态时按截止日期与当前时间比较。
    最后，没有可解析截止日期的 active 记录降级为 ended（upcoming 不受影响）。
    """
    now = now or utc_now()
    deadline = parse_iso(normalize_date(raw.deadline)) if raw.deadline else None
    # 无法识别的站点文案只保存在 metadata 中，同样参与推导
    status_text = str(raw.status or raw.metadata.get("status_text") or "").strip().lower()

    if status_text:
        if any(marker in status_text for marker in UPCOMING_MARKERS):
            status = "upcoming"
        elif any(marker in status_text for marker in ENDED_MARKERS):
            status = "ended"
        else:
            status = "active"
    elif deadline is None:
        status = "active"
    else:
        status = "active" if deadline > now else "ended"

    if status == "active" and deadline is None:
        status = "ended"
    return status


def apply_versions(
    records: List[CanonicalRecord],
    previous: Union[Mapping[str, CanonicalRecord], Iterable[CanonicalRecord], None],
) -> List[CanonicalRecord]:
    """Carry version counters forward from the previous aggregate.

    同一身份键内容指纹变化时 version = 上一版本 + 1，否则沿用上一版本号
    和 last_updated；新身份键从 1 开始。
    """
    if previous is None:
        previous_map: Dict[str, CanonicalRecord] = {}
    elif isinstance(previous, Mapping):
        previous_map = dict(previous)
    else:
        previous_map = {r.id: r for r in previous}

    for record in records:
        old = previous_map.get(record.id)
        if old is None:
            record.version = 1
            continue
        if record.fingerprint() != old.fingerprint():
            record.version = (old.version or 1) + 1
        else:
            record.version = old.version or 1
            if old.last_updated:
                record.last_updated = old.last_updated
    return records


# -----------------------------------------------------------------------------
# 竞赛处理服务类
# 支持依赖注入（通过构造函数传入 provider），方便单元测试
# -----------------------------------------------------------------------------
class ContestProcessor:
    """Turns raw records into canonical records."""

    def __init__(
        self,
        provider: BaseAIProvider | None = None,
        use_ai: bool = True,
        batch_size: int | None = None,
        item_delay: float | None = None,
        run_logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        """Initialize the processor.

        Args:
            provider: Classification provider; created from settings when omitted.
            use_ai: Disable to use the keyword classifier only.
            batch_size: Records processed concurrently per batch.
            item_delay: Stagger between items in a batch (seconds).
            run_logger: Per-run logger handle.
        """
        self.provider = provider if provider is not None else (get_ai_provider() if use_ai else None)
        self.batch_size = max(batch_size or settings.ai_batch_size, 1)
        self.item_delay = settings.ai_item_delay if item_delay is None else item_delay
        self.log = run_logger or logger
        self._stats = {"processed": 0, "ai": 0, "fallback": 0, "failed": 0}
        self._provider_available: bool | None = None

    async def close(self) -> None:
        if self.provider is not None:
            await self.provider.close()

    async def _ai_available(self) -> bool:
        if self.provider is None:
            return False
        if self._provider_available is None:
            try:
                self._provider_available = await self.provider.is_available()
            except Exception as e:
                self.log.warning(f"AI provider availability check failed: {e}")
                self._provider_available = False
            if not self._provider_available:
                self.log.info("AI provider unavailable, using keyword classifier")
        return self._provider_available

    async def classify(self, raw: RawRecord) -> tuple[Dict[str, Any], str]:
        """Classify one record, falling back to keywords on any failure.

        Returns:
            tuple: (classification, method) where method is ``ai`` or ``rule``.
        """
        if await self._ai_available():
            try:
                return await self.provider.classify_content(raw), "ai"
            except Exception as e:
                self.log.warning(f"AI analysis failed for {raw.title!r}, using fallback analysis: {e}")
        return classify_by_keywords(raw), "rule"

    def build_record(
        self,
        raw: RawRecord,
        classification: Mapping[str, Any],
        method: str,
        now: Optional[datetime] = None,
    ) -> CanonicalRecord:
        """Assemble a canonical record from a raw record and its classification."""
        timestamp = iso_now()
        source_tags = raw.metadata.get("tags") or []
        if isinstance(source_tags, str):
            source_tags = [source_tags]
        metadata = {k: v for k, v in raw.metadata.items() if k != "tags"}
        metadata["classifier"] = method

        return CanonicalRecord(
            id=make_identity_key(raw.platform, raw.url or raw.title),
            title=raw.title or "Untitled Contest",
            platform=raw.platform,
            url=raw.url or "",
            description=raw.description or "",
            deadline=normalize_date(raw.deadline) if raw.deadline else None,
            start_date=normalize_date(raw.start_date) if raw.start_date else None,
            end_date=normalize_date(raw.end_date) if raw.end_date else None,
            prize=raw.prize,
            type=classification.get("type", "mixed"),
            difficulty=classification.get("difficulty", "intermediate"),
            summary=classification.get("summary", ""),
            tags=refine_tags(list(source_tags) + list(classification.get("tags", []))),
            recommended_tools=list(classification.get("recommended_tools", [])),
            quality_score=int(classification.get("quality_score", 5)),
            confidence=float(classification.get("confidence", 0.5)),
            requirements=extract_requirements(raw.description or ""),
            status=derive_status(raw, now),
            processed_at=timestamp,
            scraped_at=raw.scraped_at,
            last_updated=timestamp,
            version=1,
            metadata=metadata,
        )

    async def process(self, raw: RawRecord, now: Optional[datetime] = None) -> CanonicalRecord:
        """Process a single raw record."""
        classification, method = await self.classify(raw)
        self._stats["processed"] += 1
        self._stats[method if method == "ai" else "fallback"] += 1
        return self.build_record(raw, classification, method, now)

    async def _process_staggered(self, raw: RawRecord, index: int, now: Optional[datetime]) -> CanonicalRecord:
        if index > 0 and self.item_delay > 0:
            await asyncio.sleep(self.item_delay * index)
        return await self.process(raw, now)

    async def process_batch(
        self,
        raws: List[RawRecord],
        now: Optional[datetime] = None,
    ) -> List[CanonicalRecord]:
        """Process records in batches; output order matches input order.

        单条记录处理失败时使用关键词分类结果构建记录，不影响同批其他记录。
        """
        processed: List[CanonicalRecord] = []
        total_batches = (len(raws) + self.batch_size - 1) // self.batch_size
        self.log.info(f"Starting processing for {len(raws)} contest(s)")

        for batch_no, offset in enumerate(range(0, len(raws), self.batch_size), start=1):
            batch = raws[offset:offset + self.batch_size]
            self.log.info(f"Processing batch {batch_no}/{total_batches}")
            outcomes = await asyncio.gather(
                *(self._process_staggered(raw, i, now) for i, raw in enumerate(batch)),
                return_exceptions=True,
            )
            for raw, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    self.log.error(f"Failed to process contest {raw.title!r}: {outcome}")
                    self._stats["failed"] += 1
                    outcome = self.build_record(raw, classify_by_keywords(raw), "rule", now)
                processed.append(outcome)

        self.log.info(f"Processing completed. Processed {len(processed)} contest(s)")
        return processed

    def apply_versions(
        self,
        records: List[CanonicalRecord],
        previous: Union[Mapping[str, CanonicalRecord], Iterable[CanonicalRecord], None],
    ) -> List[CanonicalRecord]:
        return apply_versions(records, previous)

    def get_stats(self) -> Dict[str, Any]:
        """Processing counters plus configuration."""
        return {
            **self._stats,
            "provider": getattr(self.provider, "name", None) or "rule",
            "batch_size": self.batch_size,
            "item_delay": self.item_delay,
        }
