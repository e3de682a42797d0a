"""Tests for apps/storage/manager.py: snapshots, backups, export and archival.

存储管理器测试。
"""

from __future__ import annotations

import json
import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from apps.crawler.models import RawRecord
from common.errors import StorageError
from common.utils import utc_today_str


class TestSnapshots:
    def test_directory_layout(self, storage):
        for name in ("raw", "processed", "backup", "archive"):
            assert (storage.data_dir / name).is_dir()

    def test_save_and_load_raw(self, storage, raw_records):
        result = storage.save_raw(raw_records[:1], "modelscope")
        assert result.success and result.count == 1

        today = utc_today_str()
        assert (storage.raw_dir / f"modelscope-{today}.json").exists()
        assert (storage.raw_dir / "modelscope-latest.json").exists()
        assert storage.load_raw("modelscope") == raw_records[:1]
        assert storage.load_raw("modelscope", today) == raw_records[:1]

    def test_load_raw_merges_all_platforms(self, storage, raw_records):
        storage.save_raw(raw_records[:1], "modelscope")
        storage.save_raw(raw_records[1:], "civitai")
        assert {r.platform for r in storage.load_raw()} == {"modelscope", "civitai"}

    def test_processed_aggregate_has_metadata(self, storage, make_canonical):
        storage.save_processed([make_canonical("c_1"), make_canonical("c_2", platform="civitai")])

        with open(storage.processed_dir / "all-contests-latest.json", encoding="utf-8") as f:
            data = json.load(f)
        assert data["platform"] == "all"
        assert data["contestCount"] == 2
        assert data["metadata"]["dataStructure"] == "CanonicalRecord"
        assert [r.id for r in storage.load_processed()] == ["c_1", "c_2"]

    def test_processed_round_trip_preserves_every_field(self, storage, make_canonical, iso_days):
        records = [
            make_canonical(
                "c_1",
                deadline=iso_days(12),
                prize="$10,000",
                tags=["LLM", "Agents"],
                recommended_tools=["LangChain"],
                requirements=["Python"],
                quality_score=8,
                confidence=0.9,
                metadata={"status_text": "Open", "classifier": "ai"},
                version=3,
            ),
            make_canonical("c_2", platform="civitai", status="upcoming"),
        ]
        storage.save_processed(records)
        storage.save_processed(records[:1], "modelscope")

        assert storage.load_processed() == records
        assert storage.load_processed("modelscope") == records[:1]

    def test_missing_snapshot_loads_empty(self, storage):
        assert storage.load_raw("nothing") == []
        assert storage.load_processed() == []

    def test_corrupt_snapshot_raises(self, storage):
        (storage.processed_dir / "all-contests-latest.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            storage.load_processed()

    def test_no_temp_files_left_behind(self, storage, raw_records):
        storage.save_raw(raw_records, "modelscope")
        assert not [p for p in storage.raw_dir.iterdir() if p.name.endswith(".tmp")]


class TestBackups:
    def test_backups_are_trimmed(self, storage, raw_records):
        for _ in range(5):
            storage.save_raw(raw_records, "modelscope")
        backups = list(storage.backup_dir.iterdir())
        # 第一次保存无需备份，之后 4 次各备份一次，保留最新 3 份
        assert len(backups) == 3
        assert all(p.name.startswith(f"modelscope-{utc_today_str()}.json.") for p in backups)

    def test_trimming_keeps_most_recently_modified(self, storage, raw_records):
        storage.save_raw(raw_records, "modelscope")
        now = time.time()
        # 名称顺序与修改时间顺序相反
        for name, age in (("a-newest.bak", 10), ("b-middle.bak", 100), ("c-oldest.bak", 1000)):
            path = storage.backup_dir / name
            path.write_text("{}", encoding="utf-8")
            os.utime(path, (now - age, now - age))

        storage.save_raw(raw_records, "modelscope")

        names = sorted(p.name for p in storage.backup_dir.iterdir())
        assert len(names) == 3
        assert "c-oldest.bak" not in names
        assert names[:2] == ["a-newest.bak", "b-middle.bak"]
        assert names[2].startswith(f"modelscope-{utc_today_str()}.json.")


class TestExport:
    def test_export_json(self, storage, make_canonical):
        storage.save_processed([make_canonical("c_1")])
        result = storage.export_data("json")
        assert result.success and result.count == 1
        with open(result.path, encoding="utf-8") as f:
            assert json.load(f)[0]["id"] == "c_1"

    def test_export_csv_quotes_fields(self, storage, make_canonical):
        storage.save_processed([
            make_canonical("c_1", title='Say "hi"', description="d" * 150, prize="$1,000"),
        ], "modelscope")
        result = storage.export_data("csv", "modelscope")
        assert result.success
        with open(result.path, encoding="utf-8") as f:
            lines = f.read().splitlines()
        assert lines[0] == "Title,Platform,URL,Status,Deadline,Prize,Description"
        assert lines[1].startswith('"Say ""hi""","modelscope",')
        assert '"$1,000"' in lines[1]
        assert lines[1].endswith('"' + "d" * 100 + '..."')

    def test_unsupported_format(self, storage):
        result = storage.export_data("xml")
        assert not result.success


class TestCleanupAndArchive:
    def test_cleanup_removes_only_old_dated_files(self, storage, raw_records):
        storage.save_raw(raw_records, "modelscope")
        old = storage.raw_dir / "modelscope-2020-01-01.json"
        old.write_text('{"contests": []}', encoding="utf-8")
        past = time.time() - 60 * 86400
        os.utime(old, (past, past))
        latest = storage.raw_dir / "modelscope-latest.json"
        os.utime(latest, (past, past))

        removed = storage.cleanup(days_to_keep=30)

        assert removed == 1
        assert not old.exists()
        assert latest.exists()

    def test_archive_ended_contests(self, storage, make_canonical):
        now = datetime(2025, 9, 1, tzinfo=timezone.utc)
        long_ended = make_canonical("c_old", status="ended", deadline=(now - timedelta(days=40)).isoformat())
        recently_ended = make_canonical("c_recent", status="ended", deadline=(now - timedelta(days=5)).isoformat())
        active = make_canonical("c_active", deadline=(now + timedelta(days=5)).isoformat())
        storage.save_processed([long_ended, recently_ended, active])

        result = storage.archive_ended(cutoff_days=30, now=now)

        assert result.success and result.count == 1
        assert storage.archived_ids() == {"c_old"}
        assert {r.id for r in storage.load_processed()} == {"c_recent", "c_active"}

        # 再次归档不会重复计数
        again = storage.archive_ended(cutoff_days=30, now=now)
        assert again.count == 0

    def test_storage_stats(self, storage, raw_records, make_canonical):
        storage.save_raw(raw_records[:1], "modelscope")
        storage.save_processed([make_canonical("c_1")])
        stats = storage.get_storage_stats()
        assert stats["raw_files"] == 2
        assert stats["processed_files"] == 2
        assert stats["platforms"] == ["modelscope"]
        assert stats["total_size"] > 0
        assert stats["last_update"] is not None
