"""Shared test fixtures for ContestRadar tests."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

# Ensure the project root is on sys.path so bare imports work
_PROJECT_ROOT = os.path.join(os.path.dirname(__file__), os.pardir)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, os.path.abspath(_PROJECT_ROOT))

from apps.ai_processor.models import CanonicalRecord  # noqa: E402
from apps.crawler.models import RawRecord  # noqa: E402
from apps.storage.manager import StorageManager  # noqa: E402


def iso_days_from_now(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(microsecond=0).isoformat()


@pytest.fixture
def storage(tmp_path) -> StorageManager:
    """StorageManager rooted in a temporary data directory.

    使用临时目录的存储管理器，备份保留 3 份。
    """
    return StorageManager(data_dir=tmp_path / "data", backup_count=3)


@pytest.fixture
def raw_records() -> List[RawRecord]:
    """Two valid raw records from different platforms."""
    return [
        RawRecord(
            platform="modelscope",
            title="Text to Image Generation Challenge",
            description="Build a diffusion model for image generation. Requirements: Python, PyTorch",
            url="https://modelscope.cn/competitions/101",
            deadline=iso_days_from_now(20),
            prize="¥50,000",
            status="active",
        ),
        RawRecord(
            platform="civitai",
            title="Summer LoRA Training Event",
            description="Train a LoRA on the provided dataset.",
            url="https://civitai.com/events/summer-lora",
            deadline=iso_days_from_now(5),
            status="active",
        ),
    ]


@pytest.fixture
def make_canonical():
    """Factory for CanonicalRecord instances with sensible defaults."""
    def factory(record_id: str, platform: str = "modelscope", **kwargs) -> CanonicalRecord:
        defaults = dict(
            id=record_id,
            title=f"Contest {record_id}",
            platform=platform,
            url=f"https://{platform}.example/{record_id}",
            description="A contest",
            status="active",
            last_updated=iso_days_from_now(0),
        )
        defaults.update(kwargs)
        return CanonicalRecord(**defaults)
    return factory


@pytest.fixture
def iso_days():
    """``iso_days(n)``: ISO timestamp ``n`` days from now (negative = past)."""
    return iso_days_from_now
