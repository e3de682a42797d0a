# =============================================================================
# 模块: apps/crawler/registry.py
# 功能: 数据源注册表，管理各平台的抓取配置并生成抓取任务
# 架构角色: 爬虫子系统的配置入口（SourceRegistry）。
#   - PlatformRegistry：类级别存储，平台适配器通过装饰器注册默认规则和后处理函数
#   - SourceRegistry：合并适配器默认值与 config/sources.yaml 覆盖配置，
#     生成不可变的 SourceConfig，并为每次运行产出 CrawlJob 列表
# 设计理念:
#   1. 注册表模式解耦平台定义与使用，新增平台无需修改其他文件
#   2. 平台差异是数据（选择器、正则）加小型纯函数，不是子类
#   3. SourceConfig 在一次运行内不可变；refresh() 整体替换
# =============================================================================

"""Source registry for contest platforms.

Usage:
    # Register a platform adapter with decorator
    @register_platform("modelscope", defaults=DEFAULTS)
    def postprocess(records):
        ...

    registry = SourceRegistry()
    jobs = registry.generate_jobs()
"""

from __future__ import annotations

import importlib
import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from apps.crawler.extractor import ExtractionRules
from apps.crawler.models import RawRecord
from common.config_loader import deep_merge, get_sources_config
from common.utils import run_id_from, utc_now
from settings import settings

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)

Postprocessor = Callable[[List[RawRecord]], List[RawRecord]]


@dataclass(frozen=True)
class SourceConfig:
    """Immutable per-platform crawl configuration.

    Attributes:
        name: Source identifier (e.g. 'modelscope').
        display_name: Human readable name.
        base_url: Base URL used to resolve relative links.
        list_url: Listing page URL.
        rules: Item extraction rules.
        enabled: Whether the source is crawled.
        delay: Politeness delay between requests to this source (seconds).
        max_retries: Fetch attempts per URL.
        render: Always use the rendered (headless browser) fetch.
        wait_selector: Selector to wait for in rendered fetch.
        require_title_and_url: Stricter record emission.
        enrich_details: Fetch detail pages to enrich records.
        detail_rules: Detail page field -> strategy specs.
        max_detail_pages: Upper bound on detail pages per run.
        domain: Expected URL domain for platform/URL consistency checks.
        params: Query parameters sent with the listing request.
        credentials: Names of the settings fields holding the HTTP Basic
            username and key; the source is disabled while either is empty.
    """

    name: str
    display_name: str
    base_url: str
    list_url: str
    rules: ExtractionRules
    enabled: bool = True
    delay: float = 2.0
    max_retries: int = 3
    render: bool = False
    wait_selector: Optional[str] = None
    require_title_and_url: bool = False
    enrich_details: bool = False
    detail_rules: Mapping[str, Any] = field(default_factory=dict)
    max_detail_pages: int = 10
    domain: Optional[str] = None
    params: Mapping[str, Any] = field(default_factory=dict)
    credentials: Optional[Tuple[str, str]] = None

    @property
    def accept_json(self) -> bool:
        return self.rules.is_json

    def basic_auth(self) -> Optional[Tuple[str, str]]:
        """Resolve ``credentials`` from settings; None when not configured."""
        if not self.credentials:
            return None
        username, secret = (getattr(settings, name, "") for name in self.credentials)
        if not username or not secret:
            return None
        return username, secret

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "SourceConfig":
        """Build a config from merged adapter defaults and YAML overrides."""
        return cls(
            name=name,
            display_name=data.get("display_name") or name,
            base_url=data.get("base_url", ""),
            list_url=data.get("list_url", ""),
            rules=ExtractionRules.from_config(data.get("rules") or {}),
            enabled=bool(data.get("enabled", True)),
            delay=float(data.get("delay", 2.0)),
            max_retries=int(data.get("max_retries", 3)),
            render=bool(data.get("render", False)),
            wait_selector=data.get("wait_selector"),
            require_title_and_url=bool(data.get("require_title_and_url", False)),
            enrich_details=bool(data.get("enrich_details", False)),
            detail_rules=dict(data.get("detail_rules") or {}),
            max_detail_pages=int(data.get("max_detail_pages", 10)),
            domain=data.get("domain"),
            params=dict(data.get("params") or {}),
            credentials=tuple(data["credentials"]) if data.get("credentials") else None,
        )


@dataclass(frozen=True)
class CrawlJob:
    """Ephemeral unit of work consumed once by the coordinator."""

    source: str
    url: str
    rules: ExtractionRules
    task_id: str
    created_at: datetime
    priority: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source": self.source,
            "url": self.url,
            "task_id": self.task_id,
            "created_at": self.created_at.isoformat(),
            "priority": self.priority,
        }


@dataclass
class PlatformAdapter:
    """Registered platform: default config data plus optional post-processing."""

    name: str
    defaults: Dict[str, Any]
    postprocess: Optional[Postprocessor] = None


# =============================================================================
# PlatformRegistry: 平台适配器注册表
# 采用类级别存储实现全局单例效果
# =============================================================================
class PlatformRegistry:
    """Central registry for platform adapters."""

    _adapters: Dict[str, PlatformAdapter] = {}

    @classmethod
    def register(
        cls,
        name: str,
        defaults: Mapping[str, Any],
    ) -> Callable[[Postprocessor], Postprocessor]:
        """Decorator to register a platform's post-processing function.

        Args:
            name: Platform identifier.
            defaults: Default configuration data (URLs, rules, ...).

        Returns:
            Decorator function.
        """
        def decorator(func: Postprocessor) -> Postprocessor:
            cls._adapters[name] = PlatformAdapter(name=name, defaults=dict(defaults), postprocess=func)
            logger.debug(f"Registered platform: {name} -> {func.__name__}")
            return func
        return decorator

    @classmethod
    def get(cls, name: str) -> Optional[PlatformAdapter]:
        return cls._adapters.get(name)

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls._adapters)


register_platform = PlatformRegistry.register


def load_platforms() -> None:
    """Import bundled platform adapters so their decorators run."""
    importlib.import_module("apps.crawler.platforms")


def validate_config(config: SourceConfig) -> List[str]:
    """Check a source configuration for obvious mistakes.

    校验数据源配置：名称、base_url、list_url、抽取规则及 URL 格式。

    Args:
        config: Source configuration.

    Returns:
        List[str]: Error messages (empty when valid).
    """
    errors: List[str] = []
    if not config.name or not config.name.strip():
        errors.append("name is required")
    if not config.base_url:
        errors.append("base_url is required")
    elif not _URL_RE.match(config.base_url):
        errors.append(f"base_url must start with http:// or https://: {config.base_url}")
    if not config.list_url:
        errors.append("list_url is required")
    elif not _URL_RE.match(config.list_url):
        errors.append(f"list_url must start with http:// or https://: {config.list_url}")
    if config.credentials is not None and len(config.credentials) != 2:
        errors.append("credentials must name exactly two settings fields (username, key)")
    errors.extend(config.rules.validate())
    return errors


class SourceRegistry:
    """Holds the source configurations of a run and produces crawl jobs.

    数据源注册表实例。加载时合并：平台适配器默认值 < sources.yaml 覆盖配置。
    sources.yaml 中没有对应适配器的条目作为纯配置数据源加载。
    """

    def __init__(self, overrides: Optional[Mapping[str, Any]] = None) -> None:
        """Initialize the registry.

        Args:
            overrides: Source overrides; defaults to ``config/sources.yaml``.
        """
        self._overrides = overrides
        self._configs: Dict[str, SourceConfig] = {}
        self.refresh()

    def refresh(self) -> None:
        """Reload all source configurations (replace-on-refresh)."""
        load_platforms()
        overrides = dict(self._overrides if self._overrides is not None else get_sources_config())
        configs: Dict[str, SourceConfig] = {}

        names = list(PlatformRegistry.names()) + [n for n in overrides if PlatformRegistry.get(n) is None]
        for name in names:
            adapter = PlatformRegistry.get(name)
            base = adapter.defaults if adapter else {}
            merged = deep_merge(base, overrides.get(name) or {})
            try:
                config = SourceConfig.from_dict(name, merged)
            except (TypeError, ValueError) as e:
                logger.error(f"Invalid configuration for source {name}: {e}")
                continue
            errors = validate_config(config)
            if errors:
                logger.error(f"Source {name} disabled, invalid configuration: {'; '.join(errors)}")
                continue
            if config.enabled and config.credentials and config.basic_auth() is None:
                logger.warning(
                    f"Source {name} disabled: credentials not configured ({', '.join(config.credentials).upper()})"
                )
                config = replace(config, enabled=False)
            configs[name] = config

        self._configs = configs
        logger.info(
            f"Loaded {len(configs)} source(s), enabled: {', '.join(self.enabled_names()) or 'none'}"
        )

    def get(self, name: str) -> Optional[SourceConfig]:
        return self._configs.get(name)

    def all(self) -> List[SourceConfig]:
        return list(self._configs.values())

    def get_enabled(self) -> List[SourceConfig]:
        return [c for c in self._configs.values() if c.enabled]

    def enabled_names(self) -> List[str]:
        return [c.name for c in self.get_enabled()]

    def domain_map(self) -> Dict[str, str]:
        """Platform name -> expected URL domain, for the validator."""
        return {c.name: c.domain for c in self._configs.values() if c.domain}

    def postprocessor(self, name: str) -> Optional[Postprocessor]:
        adapter = PlatformRegistry.get(name)
        return adapter.postprocess if adapter else None

    def generate_jobs(self, platform: Optional[str] = None) -> List[CrawlJob]:
        """Produce one crawl job per enabled source.

        Args:
            platform: Optional single platform to restrict to.

        Returns:
            List[CrawlJob]: Jobs for this run.
        """
        jobs: List[CrawlJob] = []
        now = utc_now()
        for config in self.get_enabled():
            if platform and config.name != platform:
                continue
            jobs.append(CrawlJob(
                source=config.name,
                url=config.list_url,
                rules=config.rules,
                task_id=f"{config.name}_{run_id_from(now)}",
                created_at=now,
            ))
        if platform and not jobs:
            logger.warning(f"No enabled source named {platform}")
        return jobs

    def describe(self) -> List[Dict[str, Any]]:
        """Summaries of all loaded sources, for status output."""
        return [
            {
                "name": c.name,
                "display_name": c.display_name,
                "enabled": c.enabled,
                "list_url": c.list_url,
                "render": c.render,
                "format": c.rules.format,
            }
            for c in self._configs.values()
        ]
