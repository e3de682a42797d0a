# =============================================================================
# 标签与需求文本处理模块
# =============================================================================
# refine_tags: 拆分复合标签、大小写无关去重、剔除泛化标签、领域标签优先、最多 8 个
# extract_requirements: 从描述中提取参赛要求列表，最多 5 条
# =============================================================================

"""Tag refinement and requirement extraction."""

from __future__ import annotations

import re
from typing import Iterable, List

MAX_TAGS = 8
MAX_REQUIREMENTS = 5

GENERIC_TAGS = frozenset({
    "ai",
    "artificial intelligence",
    "machine learning",
    "ml",
    "deep learning",
    "dl",
})

DOMAIN_PRIORITY = (
    "computer vision", "cv", "nlp", "natural language processing",
    "llm", "large language model", "reinforcement learning", "rl",
    "time series", "recommendation", "graph", "audio", "speech",
)

_TAG_SPLIT_RE = re.compile(r"[/,;|、]")
_REQUIREMENT_PATTERNS = (
    re.compile(r"requirements?\s*[:：]\s*(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"需要\s*[:：]\s*(.+)", re.DOTALL),
    re.compile(r"must have\s*[:：]\s*(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"prerequisites?\s*[:：]\s*(.+)", re.IGNORECASE | re.DOTALL),
)
_REQUIREMENT_SPLIT_RE = re.compile(r"[,;，；\n]")


def _is_priority(tag: str) -> bool:
    lowered = tag.lower()
    return any(domain in lowered for domain in DOMAIN_PRIORITY)


def refine_tags(tags: Iterable[str]) -> List[str]:
    """Clean up a tag list.

    1. 按 / , ; | 、 拆分复合标签并去除空白
    2. 大小写无关去重，保留首次出现的写法
    3. 具体标签不少于 2 个时剔除泛化标签
    4. 稳定排序：领域标签在前
    5. 最多保留 8 个

    Args:
        tags: Raw tags from the source and the classifier.

    Returns:
        List[str]: Refined tags.
    """
    split: List[str] = []
    for tag in tags:
        if not tag:
            continue
        split.extend(part.strip() for part in _TAG_SPLIT_RE.split(str(tag)))

    unique: List[str] = []
    seen = set()
    for tag in split:
        key = tag.lower()
        if not tag or key in seen:
            continue
        seen.add(key)
        unique.append(tag)

    specific = [t for t in unique if t.lower() not in GENERIC_TAGS]
    final = specific if len(specific) >= 2 else unique

    # sorted() 是稳定排序，同优先级保持原顺序
    final = sorted(final, key=lambda t: 0 if _is_priority(t) else 1)
    return final[:MAX_TAGS]


def extract_requirements(description: str) -> List[str]:
    """Extract up to five requirements following a requirements marker.

    只使用第一个命中的标记（requirements:, 需要:, must have:, prerequisites:）。
    """
    if not description:
        return []
    for pattern in _REQUIREMENT_PATTERNS:
        match = pattern.search(description)
        if not match:
            continue
        items = [item.strip() for item in _REQUIREMENT_SPLIT_RE.split(match.group(1))]
        return [item for item in items if 0 < len(item) < 100][:MAX_REQUIREMENTS]
    return []
