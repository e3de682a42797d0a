# =============================================================================
# 模块: apps/crawler/coordinator.py
# 功能: 爬取协调器，按批次并发执行各数据源的抓取任务
# 架构角色: 爬虫子系统的门面（Facade）。
#   Registry 产出 CrawlJob -> 协调器抓取页面（静态/渲染）-> Extractor 抽取
#   -> 平台后处理 -> 可选详情页补全，最终返回 {数据源: [RawRecord]}。
# 设计理念:
#   1. 启用的数据源按 max_concurrency 分批，批内 asyncio.gather 并发，批间顺序执行
#   2. 任务层重试（tenacity）独立于抓取层重试，单个数据源失败不影响其他数据源
#   3. 每个数据源只写入自己的结果槽位
#   4. 详情页补全受内层信号量约束，失败时保留原始记录
# =============================================================================

"""Crawl coordinator for contest sources.

Usage:
    coordinator = CrawlCoordinator(SourceRegistry())
    results = await coordinator.crawl_all(max_concurrency=3)
    print(coordinator.last_summary.to_dict())
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from apps.crawler.extractor import ExtractionRules, extract, extract_detail, select_items
from apps.crawler.models import RawRecord
from apps.crawler.registry import CrawlJob, SourceConfig, SourceRegistry
from common.errors import FetchError, PipelineError
from common.http import fetch
from common.render import needs_render, render_fetch
from common.utils import iso_now
from settings import settings

logger = logging.getLogger(__name__)

Fetcher = Callable[..., Awaitable[str]]


@dataclass
class CrawlResult:
    """Result of crawling one source.

    单个数据源的抓取结果。
    """
    source: str
    record_count: int = 0
    attempts: int = 0
    duration_seconds: float = 0.0
    status: str = "pending"
    error: Optional[str] = None
    timestamp: str = ""
    records: List[RawRecord] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source": self.source,
            "record_count": self.record_count,
            "attempts": self.attempts,
            "duration_seconds": round(self.duration_seconds, 3),
            "status": self.status,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class CrawlSummary:
    """Summary of one ``crawl_all`` run.

    一次全量抓取的汇总结果。
    """
    status: str = "pending"
    duration_seconds: float = 0.0
    total_records: int = 0
    results: Dict[str, CrawlResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    timestamp: str = ""

    def add_result(self, result: CrawlResult) -> None:
        self.results[result.source] = result
        self.total_records += result.record_count

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status,
            "duration_seconds": round(self.duration_seconds, 3),
            "total_records": self.total_records,
            "counts": {name: r.record_count for name, r in self.results.items()},
            "errors": list(self.errors),
            "error_count": len(self.errors),
            "timestamp": self.timestamp,
        }


class CrawlCoordinator:
    """Runs crawl jobs for every enabled source with bounded concurrency.

    Features:
        - 全量抓取：crawl_all()
        - 单源抓取：crawl_source()
        - 单任务执行：crawl_job()
        - 健康状态：health_check()
    """

    def __init__(
        self,
        registry: SourceRegistry,
        fetcher: Optional[Fetcher] = None,
        renderer: Optional[Fetcher] = None,
        max_concurrency: Optional[int] = None,
        detail_concurrency: Optional[int] = None,
        job_retries: Optional[int] = None,
        job_retry_base: Optional[float] = None,
        job_retry_cap: Optional[float] = None,
        render_enabled: Optional[bool] = None,
        run_logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            registry: Source registry of this run.
            fetcher: Static fetch coroutine (defaults to ``common.http.fetch``).
            renderer: Rendered fetch coroutine (defaults to ``common.render.render_fetch``).
            max_concurrency: Sources crawled concurrently per batch.
            detail_concurrency: Detail pages fetched concurrently per source.
            job_retries: Job-level attempts per source.
            job_retry_base: Job-level exponential wait multiplier (seconds).
            job_retry_cap: Job-level maximum wait (seconds).
            render_enabled: Allow the headless browser path at all.
            run_logger: Per-run logger handle.
        """
        self.registry = registry
        self._fetcher = fetcher or fetch
        self._renderer = renderer or render_fetch
        self.max_concurrency = max_concurrency or settings.max_concurrency
        self.detail_concurrency = detail_concurrency or settings.detail_concurrency
        self.job_retries = job_retries if job_retries is not None else settings.job_retries
        self.job_retry_base = job_retry_base if job_retry_base is not None else settings.job_retry_base
        self.job_retry_cap = job_retry_cap if job_retry_cap is not None else settings.job_retry_cap
        self.render_enabled = settings.render_enabled if render_enabled is None else render_enabled
        self.log = run_logger or logger
        self.last_summary: Optional[CrawlSummary] = None
        # 每个数据源最近一次抓取结果，供 health_check 使用
        self._health: Dict[str, CrawlResult] = {}

    # -------------------------------------------------------------------------
    # 页面抓取
    # -------------------------------------------------------------------------
    async def _render(self, source: SourceConfig, url: str) -> str:
        return await self._renderer(
            url,
            wait_selector=source.wait_selector,
            timeout=settings.request_timeout,
        )

    def _has_items(self, content: str, rules: Optional[ExtractionRules]) -> bool:
        if rules is None:
            return True
        soup = BeautifulSoup(content or "", "html.parser")
        return bool(select_items(soup, rules.item))

    async def _fetch_static(
        self,
        source: SourceConfig,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        accept_json: bool = False,
    ) -> str:
        return await self._fetcher(
            url,
            max_retries=source.max_retries,
            timeout=settings.request_timeout,
            backoff_base=settings.fetch_backoff_base,
            backoff_cap=settings.fetch_backoff_cap,
            params=params or None,
            referer=source.base_url,
            accept_json=accept_json,
            auth=source.basic_auth(),
        )

    async def fetch_page(
        self,
        source: SourceConfig,
        url: str,
        rules: Optional[ExtractionRules] = None,
    ) -> str:
        """Fetch a page, choosing the rendered path when needed.

        JSON 接口数据源只走静态抓取，并附带查询参数与认证信息；
        数据源要求渲染时直接使用浏览器抓取；否则先静态抓取，
        内容不足（可见文本过短或列表选择器零匹配）时回退到渲染抓取。

        Args:
            source: Source configuration.
            url: Page URL.
            rules: Listing rules; given only for the listing page.

        Returns:
            str: Page HTML or JSON body.

        Raises:
            FetchError: When the static fetch is exhausted.
        """
        if rules is not None and rules.is_json:
            return await self._fetch_static(source, url, params=dict(source.params), accept_json=True)

        if source.render and self.render_enabled:
            return await self._render(source, url)

        params = dict(source.params) if rules is not None else None
        content = await self._fetch_static(source, url, params=params)
        if not self.render_enabled:
            return content
        if needs_render(content, settings.render_min_text_length) or not self._has_items(content, rules):
            self.log.info(f"[{source.name}] Static content insufficient, using rendered fetch: {url}")
            try:
                return await self._render(source, url)
            except FetchError as e:
                # 渲染失败时退回静态内容
                self.log.warning(f"[{source.name}] Rendered fetch failed, keeping static content: {e}")
        return content

    # -------------------------------------------------------------------------
    # 详情页补全
    # -------------------------------------------------------------------------
    async def _enrich_one(
        self,
        source: SourceConfig,
        record: RawRecord,
        semaphore: asyncio.Semaphore,
    ) -> bool:
        async with semaphore:
            # 礼貌延迟
            await asyncio.sleep(source.delay)
            try:
                content = await self.fetch_page(source, record.url)
            except FetchError as e:
                self.log.warning(f"[{source.name}] Detail fetch failed for {record.url}: {e}")
                return False

        try:
            values = extract_detail(content, source.detail_rules)
        except Exception as e:
            self.log.warning(f"[{source.name}] Detail extraction failed for {record.url}: {e}")
            return False

        changed = False
        for name, value in values.items():
            if record.merge_better(name, value):
                changed = True
        return changed

    async def enrich(self, source: SourceConfig, records: List[RawRecord]) -> int:
        """Fetch detail pages and merge better field values into records.

        Args:
            source: Source configuration.
            records: Records to enrich in place.

        Returns:
            int: Number of records that changed.
        """
        targets = [r for r in records if r.url][: max(source.max_detail_pages, 0)]
        if not targets or not source.detail_rules:
            return 0
        semaphore = asyncio.Semaphore(self.detail_concurrency)
        outcomes = await asyncio.gather(
            *(self._enrich_one(source, record, semaphore) for record in targets),
            return_exceptions=True,
        )
        enriched = 0
        for record, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                self.log.warning(f"[{source.name}] Enrichment error for {record.url}: {outcome}")
            elif outcome:
                enriched += 1
        self.log.info(f"[{source.name}] Enriched {enriched}/{len(targets)} record(s) from detail pages")
        return enriched

    # -------------------------------------------------------------------------
    # 任务执行
    # -------------------------------------------------------------------------
    async def crawl_job(self, job: CrawlJob) -> List[RawRecord]:
        """Execute one crawl job: fetch, extract, post-process, enrich.

        Raises:
            FetchError: When the listing page cannot be fetched.
            PipelineError: When the job's source is unknown.
        """
        source = self.registry.get(job.source)
        if source is None:
            raise PipelineError(f"Unknown source: {job.source}")

        content = await self.fetch_page(source, job.url, job.rules)
        records = extract(
            content,
            job.rules,
            base_url=source.base_url,
            platform=source.name,
            require_title_and_url=source.require_title_and_url,
        )

        postprocess = self.registry.postprocessor(source.name)
        if postprocess is not None:
            records = postprocess(records)

        if source.enrich_details and records:
            await self.enrich(source, records)

        self.log.info(f"[{source.name}] Job {job.task_id}: {len(records)} record(s)")
        return records

    async def _run_job(self, job: CrawlJob) -> CrawlResult:
        """Run a job under the job-level retry policy; never raises."""
        result = CrawlResult(source=job.source, status="running")
        start = time.monotonic()

        async def attempt() -> List[RawRecord]:
            result.attempts += 1
            return await self.crawl_job(job)

        retrying_job = retry(
            stop=stop_after_attempt(max(self.job_retries, 1)),
            wait=wait_exponential(multiplier=self.job_retry_base, max=self.job_retry_cap),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        )(attempt)

        records: List[RawRecord] = []
        try:
            records = await retrying_job()
            result.status = "success"
        except Exception as e:
            result.status = "error"
            result.error = str(e)
            self.log.error(f"[{job.source}] Crawl failed after {result.attempts} attempt(s): {e}")

        result.record_count = len(records)
        result.duration_seconds = time.monotonic() - start
        result.timestamp = iso_now()
        self._health[job.source] = result
        result.records = records
        return result

    async def crawl_all(
        self,
        max_concurrency: Optional[int] = None,
        platform: Optional[str] = None,
    ) -> Dict[str, List[RawRecord]]:
        """Crawl every enabled source in batches.

        启用的数据源按 max_concurrency 分批；批内并发，批间顺序执行。
        失败的数据源对应空列表，并记入 last_summary.errors。

        Args:
            max_concurrency: Batch size override.
            platform: Restrict the run to one source.

        Returns:
            Dict[str, List[RawRecord]]: Records per source name.
        """
        batch_size = max(max_concurrency or self.max_concurrency, 1)
        jobs = self.registry.generate_jobs(platform)
        summary = CrawlSummary(status="running")
        start = time.monotonic()
        results: Dict[str, List[RawRecord]] = {job.source: [] for job in jobs}

        self.log.info(f"Crawling {len(jobs)} source(s) with concurrency {batch_size}")
        for offset in range(0, len(jobs), batch_size):
            batch = jobs[offset:offset + batch_size]
            outcomes = await asyncio.gather(
                *(self._run_job(job) for job in batch),
                return_exceptions=True,
            )
            for job, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    # _run_job 自身不抛异常；这里兜住取消之外的意外情况
                    summary.add_error(f"{job.source}: {outcome}")
                    summary.add_result(CrawlResult(source=job.source, status="error", error=str(outcome)))
                    continue
                results[job.source] = outcome.records
                summary.add_result(outcome)
                if outcome.status != "success":
                    summary.add_error(f"{job.source}: {outcome.error}")

        summary.duration_seconds = time.monotonic() - start
        summary.status = "completed" if not summary.errors else "completed_with_errors"
        summary.timestamp = iso_now()
        self.last_summary = summary
        self.log.info(
            f"Crawl finished: {summary.total_records} record(s) from {len(jobs)} source(s), "
            f"{len(summary.errors)} error(s) in {summary.duration_seconds:.1f}s"
        )
        return results

    async def crawl_source(self, name: str) -> List[RawRecord]:
        """Crawl a single source by name (with job-level retry).

        Raises:
            PipelineError: When no enabled source has this name.
        """
        jobs = self.registry.generate_jobs(name)
        if not jobs:
            raise PipelineError(f"No enabled source named {name}")
        result = await self._run_job(jobs[0])
        return result.records

    def health_check(self) -> Dict[str, Dict[str, Any]]:
        """Last known crawl status per configured source."""
        report: Dict[str, Dict[str, Any]] = {}
        for config in self.registry.all():
            last = self._health.get(config.name)
            report[config.name] = {
                "enabled": config.enabled,
                "status": last.status if last else "never_run",
                "record_count": last.record_count if last else 0,
                "duration_seconds": round(last.duration_seconds, 3) if last else None,
                "error": last.error if last else None,
                "timestamp": last.timestamp if last else None,
            }
        return report
