"""Pipeline orchestration."""

from apps.pipeline.pipeline import MODES, ContestPipeline, PipelineResult, PipelineStats

__all__ = ["MODES", "ContestPipeline", "PipelineResult", "PipelineStats"]
