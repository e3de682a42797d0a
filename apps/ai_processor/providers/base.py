# =============================================================================
# AI Provider 基类与公用工具模块
# =============================================================================
# 本模块定义了竞赛分类 Provider 的抽象基类和共用工具函数。
# 在架构中，它是 Provider 策略模式的核心，确保不同的分类服务遵循统一的
# 请求/响应契约：
#   - 请求：标题、平台、描述摘录、截止日期、奖金
#   - 响应：type, difficulty, summary, tags, recommendedTools, qualityScore, confidence
#
# 主要组成：
#   - CLASSIFY_PROMPT: 分类 Prompt 模板
#   - 工具函数: smart_truncate, parse_json_response
#   - BaseAIProvider: 抽象基类，定义 Provider 接口
# =============================================================================

"""Base AI provider abstract class."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from apps.ai_processor.models import CONTEST_TYPES, DIFFICULTIES
from apps.crawler.models import RawRecord
from common.errors import ClassificationError

SYSTEM_PROMPT = (
    "You are an AI contest analysis expert. Analyze contest information "
    "and provide structured output in JSON format."
)

# 分类 Prompt：要求模型只返回 JSON
CLASSIFY_PROMPT = """Analyze this AI/ML contest and provide a JSON response with the following structure:

{{
  "type": "image|video|audio|text|code|mixed",
  "difficulty": "beginner|intermediate|advanced",
  "summary": "Brief 2-3 sentence summary in English",
  "tags": ["tag1", "tag2", "tag3"],
  "recommendedTools": ["tool1", "tool2"],
  "qualityScore": 1-10,
  "confidence": 0.0-1.0
}}

Contest Information:
- Title: {title}
- Platform: {platform}
- Description: {description}
- Deadline: {deadline}
- Prize: {prize}

Guidelines:
- type: the primary type of AI/ML challenge
- difficulty: based on technical requirements and complexity
- tags: 5-10 relevant tags (technologies, themes, domains)
- recommendedTools: 3-5 relevant AI tools/frameworks
- qualityScore: overall contest quality (clear description, good prize, reputable platform)
- confidence: your confidence in the analysis

Respond with valid JSON only."""


def smart_truncate(text: str, max_length: int) -> str:
    """Truncate text at sentence boundaries when possible.

    智能截断文本，尽量在句子或词边界处截断。

    Args:
        text: Input text.
        max_length: Maximum length.

    Returns:
        str: Truncated text.
    """
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    # 从 80% 位置开始向后搜索句子结束标记
    search_start = int(max_length * 0.8)
    for ending in ["。", "！", "？", ".", "!", "?", "\n\n"]:
        pos = truncated.rfind(ending, search_start)
        if pos > search_start:
            return truncated[:pos + 1] + "..."
    for boundary in [" ", "，", ",", "；", ";"]:
        pos = truncated.rfind(boundary, search_start)
        if pos > search_start:
            return truncated[:pos] + "..."
    return truncated + "..."


def parse_json_response(response: str) -> Dict[str, Any]:
    """Parse the JSON object from a model response.

    解析模型返回的 JSON，支持 ```json ``` 代码块包裹，
    截取第一个 { 到最后一个 } 之间的内容。

    Args:
        response: Raw response string.

    Returns:
        dict: Parsed JSON object.

    Raises:
        ClassificationError: No JSON object could be parsed.
    """
    response = (response or "").strip()
    if response.startswith("```"):
        lines = response.split("\n")
        end_idx = len(lines)
        for i in range(len(lines) - 1, 0, -1):
            if lines[i].strip() == "```":
                end_idx = i
                break
        response = "\n".join(lines[1:end_idx])

    json_start = response.find("{")
    json_end = response.rfind("}") + 1
    if json_start == -1 or json_end <= json_start:
        raise ClassificationError("No JSON object found in response")
    try:
        data = json.loads(response[json_start:json_end])
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationError("Response JSON is not an object")
    return data


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


# -----------------------------------------------------------------------------
# AI Provider 抽象基类
# 子类只需实现 classify_content 和 is_available 两个方法。
# build_prompt 和 extract_result 作为公共逻辑放在基类中复用。
# -----------------------------------------------------------------------------
class BaseAIProvider(ABC):
    """Abstract base class for classification providers.

    竞赛分类服务提供商抽象基类。
    """

    name = "base"

    @abstractmethod
    async def classify_content(self, record: RawRecord) -> Dict[str, Any]:
        """Classify a raw contest record.

        Args:
            record: Raw contest record.

        Returns:
            dict: Normalized classification (see ``extract_result``).

        Raises:
            ClassificationError: On transport failure or an unusable response.
        """
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the provider is available."""
        ...

    async def close(self) -> None:
        """Release resources held by the provider."""
        pass

    def build_prompt(self, record: RawRecord, max_content_length: int = 1000) -> str:
        """Build the classification prompt for one record.

        Args:
            record: Raw contest record.
            max_content_length: Max description length before truncation.

        Returns:
            str: Prompt text.
        """
        description = record.description or ""
        if max_content_length > 0 and len(description) > max_content_length:
            description = smart_truncate(description, max_content_length)
        title = record.title or "N/A"
        if len(title) > 200:
            title = smart_truncate(title, 200)
        return CLASSIFY_PROMPT.format(
            title=title,
            platform=record.platform,
            description=description or "N/A",
            deadline=record.deadline or "N/A",
            prize=record.prize or "N/A",
        )

    def extract_result(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Extract a normalized classification from parsed JSON.

        对每个字段做类型检查和边界约束：
        type/difficulty 不在枚举内时取默认值，qualityScore 钳制到 1-10，
        confidence 钳制到 0-1。
        """
        contest_type = str(data.get("type") or data.get("contestType") or "mixed").lower()
        if contest_type not in CONTEST_TYPES:
            contest_type = "mixed"

        difficulty = str(data.get("difficulty") or "intermediate").lower()
        if difficulty not in DIFFICULTIES:
            difficulty = "intermediate"

        try:
            quality = int(float(data.get("qualityScore", 5)))
        except (TypeError, ValueError):
            quality = 5
        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5

        return {
            "type": contest_type,
            "difficulty": difficulty,
            "summary": str(data.get("summary") or "").strip(),
            "tags": _string_list(data.get("tags")),
            "recommended_tools": _string_list(data.get("recommendedTools", data.get("aiTools"))),
            "quality_score": max(1, min(10, quality)),
            "confidence": max(0.0, min(1.0, confidence)),
        }
