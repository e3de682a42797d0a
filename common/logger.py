# =============================================================================
# 模块: common/logger.py
# 功能: 日志系统初始化的便捷封装，以及按运行划分的日志句柄
# 架构角色: 作为日志配置的入口，封装 config_loader 中的 YAML 日志配置逻辑。
#   另外提供 get_run_logger()，每次流水线运行返回携带 run_id 的日志适配器，
#   并显式向下传递给各组件；底层日志器固定为一个，常驻进程中不会累积。
# =============================================================================
"""Logging setup for ContestRadar.

Uses YAML-based configuration from /config/logging.yaml with optional
runtime overrides for log level and log file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from common.config_loader import setup_logging_from_yaml


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Setup logging using YAML config with optional overrides.

    使用 YAML 配置文件初始化日志系统，可选覆盖日志级别和日志文件路径。
    在 main.py 的 CLI 入口中调用。

    Args:
        log_level: Override the root logger level (default: INFO).
        log_file: Override the file handler's filename (optional).
    """
    setup_logging_from_yaml(
        log_level_override=log_level,
        log_file_override=log_file,
    )


class RunLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the run id."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['run_id']}] {msg}", kwargs


def get_run_logger(run_id: str, base: str = "apps.pipeline.run") -> RunLogger:
    """Return a logging handle scoped to a single pipeline run.

    所有运行共用同一个 ``base`` 日志器，run_id 由适配器携带，
    常驻调度进程中不会为每次运行注册新的 Logger。

    Args:
        run_id: Identifier of the run (e.g. a timestamp).
        base: Logger name shared by all runs.

    Returns:
        RunLogger: Adapter over ``logging.getLogger(base)`` carrying ``run_id``.
    """
    return RunLogger(logging.getLogger(base), {"run_id": run_id})
