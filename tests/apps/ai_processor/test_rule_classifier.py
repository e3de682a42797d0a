"""Tests for the keyword classifier and tag helpers.

关键词分类器与标签处理测试。
"""

from __future__ import annotations

from apps.ai_processor.processors.rule_classifier import classify_by_keywords, make_summary
from apps.ai_processor.processors.tags import extract_requirements, refine_tags
from apps.crawler.models import RawRecord


class TestClassifyByKeywords:
    def test_type_difficulty_tags_and_tools(self):
        record = RawRecord(
            platform="civitai",
            title="Image Generation Challenge for Beginners",
            description="Use PyTorch and deep learning to generate art.",
        )
        result = classify_by_keywords(record)
        assert result["type"] == "image"
        assert result["difficulty"] == "beginner"
        assert result["tags"] == ["deep-learning", "pytorch"]
        assert result["recommended_tools"] == ["Python", "Jupyter", "PyTorch"]
        assert result["quality_score"] == 6
        assert result["confidence"] == 0.3

    def test_defaults_when_nothing_matches(self):
        result = classify_by_keywords(RawRecord(platform="openart", title="Weekly prompt", description=""))
        assert result["type"] == "mixed"
        assert result["difficulty"] == "intermediate"
        assert result["summary"] == "Contest details not available"
        assert result["recommended_tools"] == ["Python", "Jupyter"]

    def test_tag_keywords_need_word_boundaries(self):
        result = classify_by_keywords(RawRecord(platform="x", title="Paint a mountain", description="AI art"))
        # "paint"/"mountain" 中的 "ai" 不算命中
        assert result["tags"] == ["ai"]

    def test_chinese_keywords(self):
        result = classify_by_keywords(RawRecord(platform="modelscope", title="视频生成高级挑战赛"))
        assert result["type"] == "video"
        assert result["difficulty"] == "advanced"


def test_make_summary_truncates():
    assert make_summary("x" * 250) == "x" * 200 + "..."
    assert make_summary("  short   text ") == "short text"


class TestRefineTags:
    def test_split_dedupe_and_generic_removal(self):
        tags = refine_tags(["AI", "Diffusion", "Computer Vision/NLP", "ai"])
        assert tags == ["Computer Vision", "NLP", "Diffusion"]

    def test_generic_tags_kept_when_few_specific(self):
        assert refine_tags(["AI", "Diffusion"]) == ["AI", "Diffusion"]

    def test_cap_at_eight(self):
        assert len(refine_tags([f"tag{i}" for i in range(12)])) == 8

    def test_empty_values_are_ignored(self):
        assert refine_tags(["", None, " , "]) == []


class TestExtractRequirements:
    def test_first_marker_split(self):
        text = "Build a model. Requirements: Python 3.10, PyTorch; a GPU"
        assert extract_requirements(text) == ["Python 3.10", "PyTorch", "a GPU"]

    def test_chinese_marker(self):
        assert extract_requirements("需要：熟悉深度学习，会使用 PyTorch") == ["熟悉深度学习", "会使用 PyTorch"]

    def test_at_most_five_and_short_items(self):
        text = "Prerequisites: a, b, c, d, e, f, " + "x" * 120
        assert extract_requirements(text) == ["a", "b", "c", "d", "e"]

    def test_no_marker(self):
        assert extract_requirements("Just have fun") == []
