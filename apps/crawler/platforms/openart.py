# =============================================================================
# 模块: apps/crawler/platforms/openart.py
# 功能: OpenArt 竞赛平台适配器
# =============================================================================
"""OpenArt contests adapter."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from apps.crawler.models import RawRecord
from apps.crawler.registry import SourceConfig, register_platform
from common.config_loader import deep_merge

DEFAULTS = {
    "display_name": "OpenArt",
    "base_url": "https://openart.ai",
    "list_url": "https://contest.openart.ai",
    "domain": "openart.ai",
    "render": True,
    "wait_selector": ".contest-card",
    "delay": 3.0,
    "rules": {
        "item": [".contest-card", "[class*='contest-card']"],
        "title": [".contest-title", "h3", "h2"],
        "description": [".contest-description", "p"],
        "deadline": [".contest-deadline", {"regex": r"(\d+\s*(?:days?|weeks?)\s*left)"}],
        "prize": [".prize-amount", ".prize"],
        "status": [".contest-status", ".status-badge"],
        "link": [{"selector": "a[href]", "attr": "href"}, {"attr": "href"}],
    },
    "detail_rules": {
        "description": [".contest-details", ".contest-description", ".description"],
        "prize": [".prize-breakdown", ".awards", ".prize-pool"],
        "guidelines": [".guidelines", ".rules"],
        "timeline": [".timeline", ".schedule", ".important-dates"],
    },
}


@register_platform("openart", defaults=DEFAULTS)
def postprocess(records: List[RawRecord]) -> List[RawRecord]:
    """Tag every record with the contest theme keyword when present in the title."""
    for record in records:
        if record.title and ":" in record.title:
            record.metadata.setdefault("theme", record.title.split(":", 1)[1].strip())
    return records


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> SourceConfig:
    """Source configuration from the defaults above plus optional overrides."""
    return SourceConfig.from_dict("openart", deep_merge(DEFAULTS, dict(overrides or {})))
