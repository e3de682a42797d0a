# =============================================================================
# 模块: common/config_loader.py
# 功能: YAML 配置文件加载工具模块
# 架构角色: 作为配置基础设施层，为整个应用提供 YAML 配置读取能力。
#   支持两类配置文件：
#   - /config/defaults.yaml：全局默认值（由 settings.py 读取）
#   - /config/sources.yaml：数据源覆盖配置（由 SourceRegistry 读取）
#   数据源覆盖配置与平台适配器内置的默认规则深度合并。
#
# 设计决策:
#   - 文件缺失时返回空字典，调用方按内置默认值运行
#   - deep_merge 实现字典深度合并，支持嵌套配置结构
#   - 日志配置使用 Python 标准库 logging.config.dictConfig
# =============================================================================
"""YAML configuration loader for ContestRadar.

Configuration precedence (highest to lowest):
1. Environment variables (runtime override)
2. .env file (secrets)
3. /config/defaults.yaml and /config/sources.yaml
4. Hardcoded Python defaults (fallback)
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# 项目根目录：从 common/ 目录向上一级
BASE_DIR = Path(__file__).resolve().parents[1]
# 全局配置文件目录
CONFIG_DIR = BASE_DIR / "config"


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    加载指定的 YAML 文件并返回解析后的字典。
    文件不存在时返回空字典，不抛出异常。

    Args:
        file_path: Path to the YAML file.

    Returns:
        Dictionary containing the YAML contents, or empty dict if file doesn't exist.
    """
    if not file_path.exists():
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_sources_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load per-source overrides from /config/sources.yaml.

    读取数据源覆盖配置，返回 ``{source_name: {...}}`` 形式的字典。
    文件缺失或格式不符时返回空字典。

    Args:
        path: Optional explicit path to a sources YAML file.

    Returns:
        Mapping of source name to override dict.
    """
    data = load_yaml(path or CONFIG_DIR / "sources.yaml")
    sources = data.get("sources", {})
    # sources 段必须是映射，否则视为未配置
    return sources if isinstance(sources, dict) else {}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on top of ``base`` (neither is mutated).

    用于把 sources.yaml 中的覆盖项叠加到平台适配器的内置规则上：
    两边同为字典时递归合并，否则以覆盖值为准（列表整体替换）。

    示例:
        deep_merge({"rules": {"item": ".card", "title": "h3"}, "delay": 1.0},
                   {"rules": {"title": "h2"}})
        -> {"rules": {"item": ".card", "title": "h2"}, "delay": 1.0}
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def setup_logging_from_yaml(
    config_path: Optional[Path] = None,
    log_level_override: Optional[str] = None,
    log_file_override: Optional[Path] = None,
) -> None:
    """Configure logging from YAML with optional overrides.

    从 YAML 配置文件初始化日志系统，支持运行时覆盖日志级别和日志文件路径。
    如果 YAML 配置文件不存在，回退到 basicConfig 基础配置。

    Args:
        config_path: Path to logging YAML config. Defaults to /config/logging.yaml.
        log_level_override: Override the root logger level.
        log_file_override: Override the file handler's filename.
    """
    config_path = config_path or CONFIG_DIR / "logging.yaml"
    config = load_yaml(config_path)

    if not config:
        logging.basicConfig(
            level=(log_level_override or "INFO").upper(),
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
        return

    if log_level_override:
        config.setdefault("root", {})["level"] = log_level_override.upper()

    if log_file_override:
        if "handlers" in config and "file" in config["handlers"]:
            config["handlers"]["file"]["filename"] = str(log_file_override)

    # 确保所有文件 handler 的目录存在，相对路径基于项目根目录
    for handler in config.get("handlers", {}).values():
        if "filename" in handler:
            filename = Path(handler["filename"])
            if not filename.is_absolute():
                filename = BASE_DIR / filename
            filename.parent.mkdir(parents=True, exist_ok=True)
            handler["filename"] = str(filename)

    logging.config.dictConfig(config)
