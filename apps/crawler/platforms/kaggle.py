# =============================================================================
# 模块: apps/crawler/platforms/kaggle.py
# 功能: Kaggle 竞赛平台适配器（官方 JSON API）
# 架构角色: 提供 JSON 抽取规则与后处理函数。
#   接口需要 HTTP Basic 认证，凭据来自 settings 的 KAGGLE_USERNAME / KAGGLE_KEY，
#   未配置时数据源在注册表加载阶段被禁用，不会发起请求。
# =============================================================================
"""Kaggle competitions adapter (official API)."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from apps.crawler.models import RawRecord
from apps.crawler.registry import SourceConfig, register_platform
from common.config_loader import deep_merge

DEFAULTS = {
    "display_name": "Kaggle",
    "base_url": "https://www.kaggle.com",
    "list_url": "https://www.kaggle.com/api/v1/competitions/list",
    "domain": "kaggle.com",
    "credentials": ["kaggle_username", "kaggle_key"],
    "params": {"sortBy": "latestDeadline", "page": 1},
    "delay": 1.0,
    "require_title_and_url": True,
    "rules": {
        "format": "json",
        # 旧版接口直接返回列表，新版包在 competitions 字段中
        "item": ["", "competitions"],
        "title": {"key": "title"},
        "description": {"key": "description"},
        "deadline": {"key": "deadline"},
        "start_date": {"key": "enabledDate"},
        "prize": {"key": "reward"},
        "link": [{"key": "url"}, {"key": "ref", "template": "/competitions/{}"}],
        "metadata": {
            "category": {"key": "category"},
            "organizer": {"key": "organizationName"},
            "tags": {"key": "tags"},
            "team_count": {"key": "teamCount"},
        },
    },
}


@register_platform("kaggle", defaults=DEFAULTS)
def postprocess(records: List[RawRecord]) -> List[RawRecord]:
    """Drop repeated competitions and put the category in front of the tags."""
    seen = set()
    result: List[RawRecord] = []
    for record in records:
        if record.url in seen:
            continue
        seen.add(record.url)
        category = record.metadata.get("category")
        if category:
            tags = record.metadata.get("tags")
            record.metadata["tags"] = f"{category}, {tags}" if tags else category
        result.append(record)
    return result


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> SourceConfig:
    """Source configuration from the defaults above plus optional overrides."""
    return SourceConfig.from_dict("kaggle", deep_merge(DEFAULTS, dict(overrides or {})))
