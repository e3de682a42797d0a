# ==============================================================================
# 模块: ContestRadar 流水线定时任务
# 作用: 由调度器按 crawl_interval_hours 间隔触发，执行一次 full 模式流水线。
# 执行方式: APScheduler IntervalTrigger，max_instances=1 保证同一时刻只有一次运行。
# ==============================================================================

"""Periodic full pipeline run."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from apps.pipeline import ContestPipeline

logger = logging.getLogger(__name__)


async def run_pipeline_job(pipeline: Optional[ContestPipeline] = None) -> Dict[str, Any]:
    """Run the full pipeline once.

    Args:
        pipeline: Shared pipeline instance; a fresh one is created when omitted.

    Returns:
        dict: PipelineResult as a dict.
    """
    logger.info("Starting scheduled pipeline run")
    owned = pipeline is None
    pipeline = pipeline or ContestPipeline()
    try:
        result = await pipeline.execute("full")
    finally:
        if owned:
            await pipeline.close()

    if result.success:
        logger.info(f"Scheduled pipeline run {result.run_id} completed")
    else:
        logger.warning(f"Scheduled pipeline run {result.run_id} finished with {len(result.errors)} error(s)")
    return result.to_dict()
