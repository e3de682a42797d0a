# =============================================================================
# 规则分类器模块
# =============================================================================
# 本模块实现了基于关键词的本地竞赛分类，是 AI 分类的确定性兜底。
# 在架构中的角色：
#   - AI Provider 不可用、请求失败或返回无法解析时使用
#   - 只依赖标题和描述文本，不做任何网络请求
# 输出与 BaseAIProvider.extract_result() 的结构一致，
# 固定 qualityScore=6、confidence=0.3 以标明为低置信度结果。
# =============================================================================

"""Keyword-based contest classifier."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from apps.crawler.models import RawRecord

FALLBACK_QUALITY_SCORE = 6
FALLBACK_CONFIDENCE = 0.3
SUMMARY_LENGTH = 200

# -----------------------------------------------------------------------------
# 类型关键词（按顺序匹配，先命中者优先）
# -----------------------------------------------------------------------------
TYPE_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("image", ("image", "vision", "图像")),
    ("video", ("video", "视频")),
    ("audio", ("audio", "speech", "音频")),
    ("text", ("text", "nlp", "language")),
    ("code", ("code", "programming", "代码")),
]

DIFFICULTY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("beginner", ("beginner", "入门", "初级")),
    ("advanced", ("advanced", "expert", "高级")),
]

# 标签关键词：连字符形式也匹配空格形式（machine-learning / machine learning）
TAG_KEYWORDS = (
    "machine-learning",
    "ai",
    "deep-learning",
    "computer-vision",
    "nlp",
    "pytorch",
    "tensorflow",
    "huggingface",
    "llm",
)

BASE_TOOLS = ("Python", "Jupyter")
FRAMEWORK_TOOLS = (("pytorch", "PyTorch"), ("tensorflow", "TensorFlow"))


def _tag_pattern(keyword: str) -> re.Pattern:
    body = re.escape(keyword).replace(r"\-", r"[-\s]")
    return re.compile(rf"(?<![a-z0-9]){body}(?![a-z0-9])")


_TAG_PATTERNS = [(keyword, _tag_pattern(keyword)) for keyword in TAG_KEYWORDS]


def _first_match(text: str, table: List[Tuple[str, Tuple[str, ...]]], default: str) -> str:
    for label, keywords in table:
        if any(keyword in text for keyword in keywords):
            return label
    return default


def make_summary(description: str) -> str:
    description = " ".join((description or "").split())
    if not description:
        return "Contest details not available"
    if len(description) <= SUMMARY_LENGTH:
        return description
    return description[:SUMMARY_LENGTH] + "..."


def classify_by_keywords(record: RawRecord) -> Dict[str, Any]:
    """Classify a contest from its title and description.

    Args:
        record: Raw contest record.

    Returns:
        dict: Classification with the same keys as a provider result.
    """
    content = f"{record.title or ''} {record.description or ''}".lower()

    tags = [keyword for keyword, pattern in _TAG_PATTERNS if pattern.search(content)]
    tools = list(BASE_TOOLS) + [name for keyword, name in FRAMEWORK_TOOLS if keyword in content]

    return {
        "type": _first_match(content, TYPE_KEYWORDS, "mixed"),
        "difficulty": _first_match(content, DIFFICULTY_KEYWORDS, "intermediate"),
        "summary": make_summary(record.description),
        "tags": tags,
        "recommended_tools": tools,
        "quality_score": FALLBACK_QUALITY_SCORE,
        "confidence": FALLBACK_CONFIDENCE,
    }
