# ==============================================================================
# 模块: ContestRadar 数据维护定时任务
# 作用: 每天在 cleanup_hour 执行：
#   1. 删除超过保留期的带日期快照文件
#   2. 把结束超过 archive_after_days 天的竞赛移入归档
# 执行方式: APScheduler CronTrigger，每天一次。
# ==============================================================================

"""Daily cleanup and archival job."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apps.pipeline import ContestPipeline
from settings import settings

logger = logging.getLogger(__name__)


async def run_maintenance_job(pipeline: Optional[ContestPipeline] = None) -> Dict[str, Any]:
    """Run snapshot cleanup followed by archival of ended contests."""
    logger.info("Starting maintenance job")
    start_time = datetime.now(timezone.utc)
    pipeline = pipeline or ContestPipeline()

    results: Dict[str, Any] = {"removed_files": 0, "archived": 0, "errors": []}

    # 两步相互独立，一步失败不影响另一步
    try:
        results["removed_files"] = pipeline.cleanup(settings.data_retention_days)
    except OSError as e:
        logger.error(f"Snapshot cleanup failed: {e}")
        results["errors"].append(f"cleanup: {e}")

    archived = pipeline.archive(settings.archive_after_days)
    if archived.success:
        results["archived"] = archived.count
    else:
        logger.error(f"Archival failed: {archived.message}")
        results["errors"].append(f"archive: {archived.message}")

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    summary = {
        "status": "completed" if not results["errors"] else "completed_with_errors",
        "duration_seconds": duration,
        **results,
    }
    logger.info(f"Maintenance job completed: {summary}")
    return summary
