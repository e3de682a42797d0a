# =============================================================================
# 模块: apps/crawler/platforms/modelscope.py
# 功能: ModelScope（魔搭社区）竞赛平台适配器
# 架构角色: 提供抽取规则数据与小型后处理函数。
#   ModelScope 页面由 JavaScript 渲染，样式类名为构建生成的哈希值，
#   因此规则中保留多个候选选择器，按顺序尝试。
# =============================================================================
"""ModelScope competitions adapter."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from apps.crawler.dates import STATUS_VALUES
from apps.crawler.models import RawRecord
from apps.crawler.registry import SourceConfig, register_platform
from common.config_loader import deep_merge

DEFAULTS = {
    "display_name": "ModelScope",
    "base_url": "https://modelscope.cn",
    "list_url": "https://modelscope.cn/competitions",
    "domain": "modelscope.cn",
    "render": True,
    "wait_selector": ".competition-item, .antd5-col",
    "require_title_and_url": True,
    "enrich_details": True,
    "max_detail_pages": 10,
    "rules": {
        "item": [".competition-item", ".antd5-col"],
        "title": [".competition-title", ".acss-1m97cav", "h3", "h4"],
        "description": [".competition-desc", ".acss-1puit0p", ".description", "p"],
        "deadline": [
            ".deadline",
            ".date",
            {"regex": r"(\d{4}年\d{1,2}月\d{1,2}日(?:\s*\d{1,2}:\d{2})?)"},
            {"regex": r"(\d{4}-\d{1,2}-\d{1,2}\s*\d{1,2}:\d{2})"},
        ],
        "prize": [".prize-info", ".prize", ".reward", {"regex": r"((?:奖金|总奖池)[^\n]{0,30})"}],
        "status": [".status", ".contest-status", "[class*='status']"],
        "link": [{"selector": "a[href]", "attr": "href"}],
    },
    "detail_rules": {
        "description": [".contest-description", ".competition-description", ".detail-content"],
        "prize": [".prize-detail", ".award-detail", ".reward-info"],
        "registration_deadline": [".registration-deadline", ".reg-deadline"],
        "requirements": [".requirements", ".rules", ".contest-rules"],
        "submission_format": [".submission-format", ".submit-format"],
    },
}


@register_platform("modelscope", defaults=DEFAULTS)
def postprocess(records: List[RawRecord]) -> List[RawRecord]:
    """Drop the site's navigation cards and map leftover Chinese status labels."""
    result: List[RawRecord] = []
    for record in records:
        # 列表页的"全部比赛"等导航卡片没有详情链接
        if "/competitions" not in record.url or record.url.rstrip("/").endswith("/competitions"):
            continue
        if record.status and record.status not in STATUS_VALUES:
            record.apply_status_text(record.status)
        result.append(record)
    return result


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> SourceConfig:
    """Source configuration from the defaults above plus optional overrides."""
    return SourceConfig.from_dict("modelscope", deep_merge(DEFAULTS, dict(overrides or {})))
