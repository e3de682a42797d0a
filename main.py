# =============================================================================
# 模块: main.py
# 功能: ContestRadar 命令行入口
# 架构角色: 解析命令行参数、初始化日志、组装流水线并执行对应命令：
#   run       执行一次流水线（full / crawl-only / process-only / generate-only）
#   status    输出存储统计、数据源健康度与处理统计
#   sources   列出已配置的数据源
#   cleanup   删除过期的带日期快照
#   export    导出最新处理结果为 JSON 或 CSV
#   archive   归档已结束的竞赛
#   schedule  启动定时调度器（常驻）
# 退出码: 0 表示成功，1 表示流水线有错误或命令失败
# =============================================================================
"""ContestRadar command line interface.

用法示例：
    contest-radar run
    contest-radar run --mode crawl-only --platform modelscope
    contest-radar status --json
    contest-radar export --format csv
    contest-radar cleanup --days 14
    contest-radar schedule
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.logger import setup_logging
from settings import settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all sub-commands."""
    parser = argparse.ArgumentParser(
        prog="contest-radar",
        description="ContestRadar AI/ML 竞赛聚合工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=settings.log_level, help="日志级别 (DEBUG/INFO/WARNING/ERROR)")
    parser.add_argument("--data-dir", type=Path, default=None, help="数据目录（默认读取配置）")
    parser.add_argument("--no-ai", action="store_true", help="只使用关键词分类，不调用 AI Provider")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="执行一次流水线")
    run.add_argument(
        "--mode",
        choices=["full", "crawl-only", "process-only", "generate-only"],
        default="full",
        help="运行模式",
    )
    run.add_argument("--platform", default=None, help="只处理指定平台")

    status = sub.add_parser("status", help="查看系统状态")
    status.add_argument("--json", action="store_true", help="以 JSON 输出")

    sub.add_parser("sources", help="列出已配置的数据源")

    cleanup = sub.add_parser("cleanup", help="删除过期快照")
    cleanup.add_argument("--days", type=int, default=None, help="保留天数")

    export = sub.add_parser("export", help="导出最新处理结果")
    export.add_argument("--format", choices=["json", "csv"], default="json", help="导出格式")
    export.add_argument("--platform", default=None, help="只导出指定平台")

    archive = sub.add_parser("archive", help="归档已结束的竞赛")
    archive.add_argument("--days", type=int, default=None, help="结束多少天后归档")

    schedule = sub.add_parser("schedule", help="启动定时调度器")
    schedule.add_argument("--no-immediate", action="store_true", help="启动时不立即执行一次流水线")

    return parser


def build_pipeline(args: argparse.Namespace):
    """Assemble a pipeline from CLI options."""
    from apps.ai_processor import ContestProcessor
    from apps.pipeline import ContestPipeline
    from apps.storage import StorageManager

    return ContestPipeline(
        processor=ContestProcessor(use_ai=not args.no_ai),
        storage=StorageManager(data_dir=args.data_dir),
    )


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _print_status(status: dict) -> None:
    storage = status["storage"]
    print("ContestRadar Status")
    print(f"- Platforms: {', '.join(status['platforms']) or '(none)'}")
    print(f"- Raw files: {storage['raw_files']}, processed files: {storage['processed_files']}, "
          f"backups: {storage['backup_files']}, archives: {storage['archive_files']}")
    print(f"- Total size: {storage['total_size']} bytes")
    print(f"- Last update: {storage['last_update'] or 'never'}")
    for name, health in status["crawler"].items():
        print(f"- {name}: {health.get('status')}")


async def _run_command(args: argparse.Namespace) -> int:
    from common.http import close_client

    pipeline = build_pipeline(args)
    try:
        if args.command == "run":
            result = await pipeline.execute(args.mode, platform=args.platform)
            print(pipeline.format_summary(result))
            return 0 if result.success else 1

        if args.command == "status":
            status = pipeline.get_status()
            if args.json:
                _print_json(status)
            else:
                _print_status(status)
            return 0

        if args.command == "sources":
            for source in pipeline.registry.describe():
                flag = "enabled" if source["enabled"] else "disabled"
                print(f"{source['name']:<12} {flag:<9} {source['list_url']}")
            return 0

        if args.command == "cleanup":
            removed = pipeline.cleanup(args.days)
            print(f"Removed {removed} file(s)")
            return 0

        if args.command == "export":
            outcome = pipeline.export(args.format, args.platform)
            print(outcome.message if not outcome.success else f"Exported {outcome.count} contests to {outcome.path}")
            return 0 if outcome.success else 1

        if args.command == "archive":
            outcome = pipeline.archive(args.days)
            print(outcome.message)
            return 0 if outcome.success else 1

        if args.command == "schedule":
            from apps.scheduler import run_forever
            await run_forever(pipeline=pipeline, run_immediately=not args.no_immediate)
            return 0

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await pipeline.close()
        await close_client()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Returns:
        int: Process exit code.
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level.upper(), None)

    try:
        return asyncio.run(_run_command(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
