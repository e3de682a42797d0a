# ==============================================================================
# 模块: ContestRadar 调度任务注册与管理模块
# 作用: 创建和管理 APScheduler 调度器实例，注册两类定时任务：
#   1. 流水线任务：按 crawl_interval_hours 间隔执行 full 模式流水线
#   2. 维护任务：每天 cleanup_hour 点清理过期快照并归档已结束竞赛
# 架构角色: 调度层的顶层编排器，供 `contest-radar schedule` 命令使用。
# 设计思路: 调度器单例；流水线任务 max_instances=1 + coalesce，
#           上一次未完成时不会并发启动第二次，错过的触发合并为一次。
# ==============================================================================

"""Scheduler tasks for ContestRadar."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from settings import settings

logger = logging.getLogger(__name__)

# 模块级别的调度器单例
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler singleton.

    获取或创建调度器单例实例，使用配置中的时区初始化。

    Returns:
        AsyncIOScheduler: Scheduler singleton instance.
    """
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
    return _scheduler


def register_jobs(scheduler: AsyncIOScheduler, pipeline=None, run_immediately: bool = False) -> None:
    """Register the pipeline and maintenance jobs.

    Args:
        scheduler: Target scheduler.
        pipeline: Shared ContestPipeline passed to both jobs.
        run_immediately: Also trigger one pipeline run as soon as the scheduler starts.
    """
    from apps.scheduler.jobs.maintenance_job import run_maintenance_job
    from apps.scheduler.jobs.pipeline_job import run_pipeline_job

    # ---- 流水线任务 ----
    pipeline_trigger = IntervalTrigger(hours=settings.crawl_interval_hours)
    job_kwargs = {}
    if run_immediately:
        from common.utils import utc_now
        job_kwargs["next_run_time"] = utc_now()
    scheduler.add_job(
        run_pipeline_job,
        pipeline_trigger,
        kwargs={"pipeline": pipeline},
        id="pipeline_job",
        name="Crawl, process and persist contests",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **job_kwargs,
    )
    logger.info(f"Pipeline job registered (interval={settings.crawl_interval_hours}h)")

    # ---- 维护任务 ----
    scheduler.add_job(
        run_maintenance_job,
        CronTrigger(hour=settings.cleanup_hour, minute=0),
        kwargs={"pipeline": pipeline},
        id="maintenance_job",
        name="Cleanup snapshots and archive ended contests",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Maintenance job registered (daily at {settings.cleanup_hour:02d}:00)")


async def start_scheduler(pipeline=None, run_immediately: bool = False) -> AsyncIOScheduler:
    """Register all jobs and start the scheduler.

    Returns:
        AsyncIOScheduler: The running scheduler.
    """
    scheduler = get_scheduler()
    register_jobs(scheduler, pipeline=pipeline, run_immediately=run_immediately)
    scheduler.start()
    logger.info("Scheduler started")
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully.

    优雅停止调度器，等待正在执行的任务完成后关闭。
    """
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown()
        logger.info("Scheduler stopped")
    _scheduler = None


async def run_forever(pipeline=None, run_immediately: bool = True) -> None:
    """Start the scheduler and block until cancelled (Ctrl+C)."""
    await start_scheduler(pipeline=pipeline, run_immediately=run_immediately)
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Scheduler cancelled")
    finally:
        await stop_scheduler()
