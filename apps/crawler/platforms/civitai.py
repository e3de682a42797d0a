# =============================================================================
# 模块: apps/crawler/platforms/civitai.py
# 功能: Civitai 活动（events / contests）平台适配器
# =============================================================================
"""Civitai events adapter."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from apps.crawler.models import RawRecord
from apps.crawler.registry import SourceConfig, register_platform
from common.config_loader import deep_merge

DEFAULTS = {
    "display_name": "Civitai",
    "base_url": "https://civitai.com",
    "list_url": "https://civitai.com/events",
    "domain": "civitai.com",
    "render": True,
    "wait_selector": "a[href^='/events/']",
    "enrich_details": True,
    "max_detail_pages": 10,
    "rules": {
        "item": ["[data-testid='event-card']", "a[href^='/events/']"],
        "title": ["h3", "h2", ".event-title"],
        "description": [".event-description", "p"],
        "deadline": [
            ".event-deadline",
            {"regex": r"(\d+\s*(?:days?|weeks?|hours?)\s*left)"},
            {"regex": r"(ends?\s+in\s+\d+\s*(?:days?|weeks?|hours?))"},
        ],
        "prize": [".prize-amount", {"regex": r"(\$\s*[\d,.]+\s*[kKmM]?)"}],
        "link": [{"attr": "href"}, {"selector": "a[href]", "attr": "href"}],
    },
    "detail_rules": {
        "description": [".event-description", ".content-description", "main .description"],
        "prize": [".prize-pool", ".reward-details", ".bounty-amount"],
        "requirements": [".requirements", ".rules", ".submission-rules"],
        "judging_criteria": [".judging", ".criteria", ".evaluation"],
    },
}


@register_platform("civitai", defaults=DEFAULTS)
def postprocess(records: List[RawRecord]) -> List[RawRecord]:
    """Keep only event pages and de-duplicate repeated cards by URL."""
    seen = set()
    result: List[RawRecord] = []
    for record in records:
        if "/events/" not in record.url or record.url in seen:
            continue
        seen.add(record.url)
        result.append(record)
    return result


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> SourceConfig:
    """Source configuration from the defaults above plus optional overrides."""
    return SourceConfig.from_dict("civitai", deep_merge(DEFAULTS, dict(overrides or {})))
