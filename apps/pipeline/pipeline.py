# =============================================================================
# 模块: apps/pipeline/pipeline.py
# 功能: 竞赛数据流水线编排器
# 架构角色: 整个系统的编排层，按阶段顺序调用各组件并隔离失败：
#   Crawl -> Validate -> Process -> Persist -> Generate/Notify
# 运行模式:
#   full          全部阶段
#   crawl-only    抓取并保存原始快照（仍执行校验，便于报告）
#   process-only  无新抓取数据时加载最新原始快照，校验、处理、保存
#   generate-only 加载最新处理结果，生成 UI feed
# 设计决策:
#   - 每个阶段的异常都被捕获并记录，success = 没有错误
#   - 每次运行创建 apps.pipeline.run.<run_id> 子日志器并向下传递给各组件
#   - 单个数据源失败只是警告；无效记录计入错误
# =============================================================================
"""Crawl -> validate -> process -> persist pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from apps.ai_processor.models import CanonicalRecord
from apps.ai_processor.service import ContestProcessor
from apps.crawler.coordinator import CrawlCoordinator
from apps.crawler.models import RawRecord
from apps.crawler.registry import SourceRegistry
from apps.notification.service import NotificationService
from apps.storage.manager import StorageManager, StorageResult
from apps.validator.validator import DataValidator
from common.errors import StorageError, classify
from common.logger import get_run_logger
from common.utils import iso_now, parse_iso, run_id_from, utc_now
from settings import settings

logger = logging.getLogger(__name__)

MODES = ("full", "crawl-only", "process-only", "generate-only")
FEED_STATUSES = ("active", "upcoming")


@dataclass
class PipelineStats:
    crawled: int = 0
    processed: int = 0
    validated: int = 0
    generated: int = 0
    saved: int = 0
    errors: int = 0
    warnings: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    success: bool = False
    mode: str = "full"
    run_id: str = ""
    duration_seconds: float = 0.0
    start_time: str = ""
    end_time: str = ""
    stats: PipelineStats = field(default_factory=PipelineStats)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode,
            "run_id": self.run_id,
            "duration_seconds": round(self.duration_seconds, 3),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "stats": self.stats.to_dict(),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def _deadline_sort_key(record: CanonicalRecord):
    deadline = parse_iso(record.deadline) if record.deadline else None
    # 无截止日期排在最后
    return (deadline is None, deadline.timestamp() if deadline else 0.0, record.title)


def dedupe_by_id(records: List[CanonicalRecord]) -> List[CanonicalRecord]:
    """Keep the first record of every identity key, preserving order."""
    seen = set()
    unique: List[CanonicalRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


class ContestPipeline:
    """Sequences the pipeline stages with partial-failure tolerance."""

    def __init__(
        self,
        registry: Optional[SourceRegistry] = None,
        coordinator: Optional[CrawlCoordinator] = None,
        validator: Optional[DataValidator] = None,
        processor: Optional[ContestProcessor] = None,
        storage: Optional[StorageManager] = None,
        notifier: Optional[NotificationService] = None,
        enable_validation: Optional[bool] = None,
    ) -> None:
        self.registry = registry or SourceRegistry()
        self.coordinator = coordinator or CrawlCoordinator(self.registry)
        self.validator = validator or DataValidator(platform_domains=self.registry.domain_map())
        self.processor = processor or ContestProcessor()
        self.storage = storage or StorageManager()
        self.notifier = notifier or NotificationService()
        self.enable_validation = settings.enable_validation if enable_validation is None else enable_validation

    async def close(self) -> None:
        await self.processor.close()

    # -------------------------------------------------------------------------
    # 主流程
    # -------------------------------------------------------------------------
    async def execute(self, mode: str = "full", platform: Optional[str] = None) -> PipelineResult:
        """Run the pipeline.

        Args:
            mode: One of ``full``, ``crawl-only``, ``process-only``, ``generate-only``.
            platform: Restrict crawling/loading to one platform.

        Returns:
            PipelineResult: Stats, errors and warnings of the run.
        """
        if mode not in MODES:
            raise ValueError(f"Unknown pipeline mode: {mode} (expected one of {', '.join(MODES)})")

        started = utc_now()
        start = time.monotonic()
        run_id = run_id_from(started)
        log = get_run_logger(run_id)
        self.coordinator.log = log
        self.processor.log = log

        result = PipelineResult(mode=mode, run_id=run_id, start_time=started.isoformat())
        stats = result.stats

        def error(message: str, exc: Optional[BaseException] = None) -> None:
            if exc is not None:
                message = f"{message} [{classify(exc).value}]: {exc}"
            result.errors.append(message)
            stats.errors += 1
            log.error(message)

        def warning(message: str) -> None:
            result.warnings.append(message)
            stats.warnings += 1
            log.warning(message)

        log.info(f"Starting pipeline execution in {mode} mode")
        raw_records: List[RawRecord] = []
        processed: List[CanonicalRecord] = []
        aggregate: List[CanonicalRecord] = []
        new_records: List[CanonicalRecord] = []

        # ---------------- Step 1: 抓取 ----------------
        if mode in ("full", "crawl-only"):
            try:
                log.info("Step 1: Starting data crawling")
                by_source = await self.coordinator.crawl_all(platform=platform)
                summary = self.coordinator.last_summary
                for message in (summary.errors if summary else []):
                    warning(f"Crawl failed for {message}")
                for name, records in by_source.items():
                    raw_records.extend(records)
                    if not records:
                        continue
                    saved = self.storage.save_raw(records, name)
                    if not saved.success:
                        error(f"Failed to save raw data for {name}: {saved.message}")
                stats.crawled = len(raw_records)
                log.info(f"Crawled {len(raw_records)} contests")
            except Exception as e:
                error("Data crawling failed", e)

        # process-only 没有新数据时加载最新原始快照
        if mode == "process-only" and not raw_records:
            try:
                raw_records = self.storage.load_raw(platform)
                log.info(f"Loaded {len(raw_records)} raw contests from latest snapshots")
            except StorageError as e:
                error("Failed to load raw data", e)

        # ---------------- Step 2: 校验 ----------------
        if raw_records and self.enable_validation:
            try:
                log.info("Step 2: Validating raw data")
                validation = self.validator.validate(raw_records)
                log.info(validation.summary())
                stats.validated = validation.valid
                for item in validation.invalid_records():
                    error(f'Invalid contest "{item.label}" ({item.record.platform}): '
                          f"{'; '.join(map(str, item.errors))}")
                warned = validation.with_warnings()
                if warned:
                    warning(f"Validation warnings: {len(warned)} contests have warnings")
                raw_records = validation.valid_records()
                log.info(f"Validation completed. {len(raw_records)} valid contests will be processed")
            except Exception as e:
                warning(f"Data validation failed: {e}")

        # ---------------- Step 3: 处理 ----------------
        if mode in ("full", "process-only") and raw_records:
            try:
                log.info("Step 3: Processing contests")
                processed = await self.processor.process_batch(raw_records)
                unique = dedupe_by_id(processed)
                if len(unique) < len(processed):
                    # 同一平台同一链接的记录只保留第一条
                    warning(f"Collapsed {len(processed) - len(unique)} duplicate contest(s) sharing an identity key")
                processed = unique
                stats.processed = len(processed)
            except Exception as e:
                error("Contest processing failed", e)

        # ---------------- Step 4: 持久化 ----------------
        if processed and mode != "generate-only":
            try:
                log.info("Step 4: Saving processed data")
                aggregate, new_records = self._persist(processed, result, error, warning)
            except Exception as e:
                error("Data saving failed", e)

        # ---------------- Step 5: 生成与通知 ----------------
        if mode in ("full", "generate-only"):
            if mode == "generate-only":
                try:
                    aggregate = self.storage.load_processed(platform)
                    log.info(f"Loaded {len(aggregate)} existing processed contests")
                except StorageError as e:
                    error("Failed to load existing data", e)
            try:
                log.info("Step 5: Generating feed")
                feed = self.build_feed(aggregate)
                saved = self.storage.save_feed(feed)
                if saved.success:
                    stats.generated = saved.count
                else:
                    warning(f"Feed generation failed: {saved.message}")
            except Exception as e:
                warning(f"Feed generation failed: {e}")

            try:
                notified = await self.notifier.notify_new_contests(new_records)
                if not notified.success:
                    warning(f"Notification failed: {notified.message}")
            except Exception as e:
                warning(f"Notification failed: {e}")

        result.duration_seconds = time.monotonic() - start
        result.end_time = iso_now()
        result.success = not result.errors
        log.info(self.format_summary(result))
        return result

    def _persist(self, processed, result, error, warning):
        """Version, save per platform and consolidated; return (aggregate, new records)."""
        stats = result.stats
        try:
            previous = dedupe_by_id(self.storage.load_processed())
        except StorageError as e:
            warning(f"Previous aggregate unreadable, versions restart at 1: {e}")
            previous = []

        self.processor.apply_versions(processed, previous)
        previous_ids = {r.id for r in previous}
        new_records = [r for r in processed if r.id not in previous_ids]

        platforms = sorted({r.platform for r in processed})
        for name in platforms:
            saved = self.storage.save_processed([r for r in processed if r.platform == name], name)
            if saved.success:
                stats.saved += saved.count
            else:
                error(f"Failed to save processed data for {name}: {saved.message}")

        # 本次没有产出记录的平台沿用上一次聚合中的记录
        aggregate = list(processed) + [r for r in previous if r.platform not in platforms]
        consolidated = self.storage.save_processed(aggregate)
        if not consolidated.success:
            error(f"Failed to save consolidated data: {consolidated.message}")
        return aggregate, new_records

    @staticmethod
    def build_feed(records: List[CanonicalRecord]) -> List[CanonicalRecord]:
        """Active and upcoming records sorted by deadline (undated last)."""
        return sorted((r for r in records if r.status in FEED_STATUSES), key=_deadline_sort_key)

    # -------------------------------------------------------------------------
    # 运维操作
    # -------------------------------------------------------------------------
    def get_status(self) -> Dict[str, Any]:
        """Storage, crawler health, processor stats and configured sources."""
        return {
            "storage": self.storage.get_storage_stats(),
            "crawler": self.coordinator.health_check(),
            "processor": self.processor.get_stats(),
            "platforms": self.registry.enabled_names(),
            "sources": self.registry.describe(),
            "last_check": iso_now(),
        }

    def cleanup(self, days_to_keep: Optional[int] = None) -> int:
        logger.info(f"Starting cleanup of data older than {days_to_keep or settings.data_retention_days} days")
        removed = self.storage.cleanup(days_to_keep)
        logger.info(f"Cleanup completed, removed {removed} file(s)")
        return removed

    def export(self, format: str = "json", platform: Optional[str] = None) -> StorageResult:
        return self.storage.export_data(format, platform)

    def archive(self, cutoff_days: Optional[int] = None) -> StorageResult:
        return self.storage.archive_ended(cutoff_days)

    @staticmethod
    def format_summary(result: PipelineResult) -> str:
        """Multi-line run summary for logs and the CLI."""
        s = result.stats
        lines = [
            "Pipeline Execution Summary:",
            f"- Status: {'SUCCESS' if result.success else 'FAILED'}",
            f"- Mode: {result.mode}",
            f"- Duration: {result.duration_seconds:.1f}s",
            f"- Crawled: {s.crawled} contests",
            f"- Validated: {s.validated} contests",
            f"- Processed: {s.processed} contests",
            f"- Saved: {s.saved} contests",
            f"- Generated: {s.generated} items",
            f"- Errors: {s.errors}",
            f"- Warnings: {s.warnings}",
        ]
        for message in result.errors[:10]:
            lines.append(f"  ! {message}")
        for message in result.warnings[:10]:
            lines.append(f"  ~ {message}")
        return "\n".join(lines)
