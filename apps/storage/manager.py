# =============================================================================
# 模块: apps/storage/manager.py
# 功能: 竞赛数据的文件存储管理（快照、备份、导出、清理、归档）
# 架构角色: 流水线的持久化层，数据目录的唯一写入者。
#   目录结构（data_dir 下）:
#     raw/        原始快照 {platform}-{YYYY-MM-DD}.json 与 {platform}-latest.json
#     processed/  处理后快照 {platform|all-contests}-{date}.json、对应 -latest.json 和 feed.json
#     backup/     覆盖前的日期文件备份 {filename}.{id}.bak，按修改时间保留最近 N 个
#     archive/    已结束竞赛归档 archive-{date}.json
# 设计决策:
#   - 所有写入先写临时文件再 os.replace，读者永远看不到半写状态
#   - 保存失败返回 StorageResult(success=False)；只有读取损坏文件时抛 StorageError
#   - -latest.json 永不被 cleanup 删除
# =============================================================================
"""File-based snapshot storage."""

from __future__ import annotations

import csv
import json
import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from apps.ai_processor.models import CanonicalRecord
from apps.crawler.models import RawRecord
from common.errors import StorageError
from common.utils import iso_now, parse_iso, run_id_from, utc_now, utc_today_str
from settings import settings

logger = logging.getLogger(__name__)

SUBDIRS = ("raw", "processed", "backup", "archive")
AGGREGATE_NAME = "all-contests"
FEED_FILENAME = "feed.json"
PROCESSED_DATA_VERSION = "1.0.0"
CSV_HEADER = "Title,Platform,URL,Status,Deadline,Prize,Description"
CSV_DESCRIPTION_LENGTH = 100

_DATED_RE = re.compile(r"^(?P<scope>.+?)-(?P<date>\d{4}-\d{2}-\d{2})\.json$")
_SNAPSHOT_RE = re.compile(r"^(?P<scope>.+?)-(?:latest|\d{4}-\d{2}-\d{2})\.json$")


@dataclass
class StorageResult:
    """Outcome of a storage write."""

    success: bool
    path: Optional[str] = None
    count: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "path": self.path, "count": self.count, "message": self.message}


class StorageManager:
    """Owns the data directory layout and every read/write inside it."""

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        """Initialize storage and create the directory layout.

        Args:
            data_dir: Root data directory (defaults to ``settings.data_dir``).
            backup_count: Number of backups to keep.
        """
        self.data_dir = Path(data_dir or settings.data_dir)
        self.backup_count = backup_count if backup_count is not None else settings.backup_count
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for name in SUBDIRS:
            (self.data_dir / name).mkdir(parents=True, exist_ok=True)
        logger.debug(f"Storage directories initialized under {self.data_dir}")

    @property
    def raw_dir(self) -> Path:
        return self.data_dir / "raw"

    @property
    def processed_dir(self) -> Path:
        return self.data_dir / "processed"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / "backup"

    @property
    def archive_dir(self) -> Path:
        return self.data_dir / "archive"

    # -------------------------------------------------------------------------
    # 底层文件操作
    # -------------------------------------------------------------------------
    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        """Write JSON atomically (temp file in the same directory + os.replace)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    @staticmethod
    def _read_json(path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt snapshot {path}: {e}", details={"path": str(path)}) from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}", details={"path": str(path)}) from e

    def _create_backup(self, path: Path) -> None:
        """Copy an existing file into backup/ and trim old backups."""
        backup_name = f"{path.name}.{run_id_from()}_{uuid.uuid4().hex[:6]}.bak"
        try:
            shutil.copy2(path, self.backup_dir / backup_name)
            # copy2 保留源文件 mtime，这里刷新为备份时间以便按时间裁剪
            os.utime(self.backup_dir / backup_name)
            logger.debug(f"Created backup: {backup_name}")
        except OSError as e:
            logger.warning(f"Failed to create backup of {path}: {e}")
            return
        self._trim_backups()

    def _trim_backups(self) -> int:
        """Keep only the ``backup_count`` most recently modified backups."""
        backups = [p for p in self.backup_dir.iterdir() if p.is_file()]
        if len(backups) <= self.backup_count:
            return 0
        backups.sort(key=lambda p: (p.stat().st_mtime, p.name))
        removed = 0
        for path in backups[: len(backups) - self.backup_count]:
            try:
                path.unlink()
                removed += 1
                logger.debug(f"Removed old backup: {path.name}")
            except OSError as e:
                logger.warning(f"Failed to remove old backup {path.name}: {e}")
        return removed

    def _save_snapshot(self, directory: Path, scope: str, payload: Dict[str, Any]) -> Path:
        dated_path = directory / f"{scope}-{utc_today_str()}.json"
        if dated_path.exists():
            self._create_backup(dated_path)
        self._write_json(dated_path, payload)
        self._write_json(directory / f"{scope}-latest.json", payload)
        return dated_path

    # -------------------------------------------------------------------------
    # 保存
    # -------------------------------------------------------------------------
    def save_raw(self, records: List[RawRecord], platform: str) -> StorageResult:
        """Save raw records of one platform (dated file + latest pointer)."""
        payload = {
            "platform": platform,
            "timestamp": iso_now(),
            "contestCount": len(records),
            "contests": [r.to_dict() for r in records],
        }
        try:
            path = self._save_snapshot(self.raw_dir, platform, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save raw contests for {platform}: {e}")
            return StorageResult(success=False, message=f"Failed to save contests: {e}")
        logger.info(f"Saved {len(records)} raw contest(s) for {platform} -> {path}")
        return StorageResult(
            success=True,
            path=str(path),
            count=len(records),
            message=f"Successfully saved {len(records)} contests",
        )

    def save_processed(self, records: List[CanonicalRecord], platform: Optional[str] = None) -> StorageResult:
        """Save processed records for one platform or the consolidated aggregate."""
        timestamp = iso_now()
        payload = {
            "platform": platform or "all",
            "timestamp": timestamp,
            "contestCount": len(records),
            "contests": [r.to_dict() for r in records],
            "metadata": {
                "version": PROCESSED_DATA_VERSION,
                "dataStructure": "CanonicalRecord",
                "lastUpdated": timestamp,
            },
        }
        scope = platform or AGGREGATE_NAME
        try:
            path = self._save_snapshot(self.processed_dir, scope, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save processed contests ({scope}): {e}")
            return StorageResult(success=False, message=f"Failed to save processed contests: {e}")
        logger.info(f"Saved {len(records)} processed contest(s) ({scope}) -> {path}")
        return StorageResult(
            success=True,
            path=str(path),
            count=len(records),
            message=f"Successfully saved {len(records)} processed contests",
        )

    def save_feed(self, records: List[CanonicalRecord]) -> StorageResult:
        """Write the UI feed ``processed/feed.json``."""
        path = self.processed_dir / FEED_FILENAME
        payload = {
            "timestamp": iso_now(),
            "contestCount": len(records),
            "contests": [r.to_dict() for r in records],
        }
        try:
            self._write_json(path, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write feed: {e}")
            return StorageResult(success=False, message=f"Failed to write feed: {e}")
        return StorageResult(success=True, path=str(path), count=len(records), message="Feed generated")

    # -------------------------------------------------------------------------
    # 读取
    # -------------------------------------------------------------------------
    def _load_contests(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            logger.warning(f"Data file not found: {path}")
            return []
        data = self._read_json(path)
        contests = data.get("contests") if isinstance(data, dict) else None
        if not isinstance(contests, list):
            raise StorageError(f"Snapshot {path} has no contests list", details={"path": str(path)})
        return contests

    def load_raw(self, platform: Optional[str] = None, date: Optional[str] = None) -> List[RawRecord]:
        """Load raw records.

        - platform + date: that dated file
        - platform: the platform latest pointer
        - neither: every ``*-latest.json`` raw file merged

        Raises:
            StorageError: A snapshot file is corrupt.
        """
        if platform:
            name = f"{platform}-{date}.json" if date else f"{platform}-latest.json"
            items = self._load_contests(self.raw_dir / name)
        else:
            items = []
            for path in sorted(self.raw_dir.glob("*-latest.json")):
                items.extend(self._load_contests(path))
        return [RawRecord.from_dict(item) for item in items if isinstance(item, dict)]

    def load_processed(self, platform: Optional[str] = None, date: Optional[str] = None) -> List[CanonicalRecord]:
        """Load processed records of one platform or the aggregate.

        Raises:
            StorageError: The snapshot file is corrupt.
        """
        scope = platform or AGGREGATE_NAME
        name = f"{scope}-{date}.json" if date else f"{scope}-latest.json"
        items = self._load_contests(self.processed_dir / name)
        return [CanonicalRecord.from_dict(item) for item in items if isinstance(item, dict)]

    # -------------------------------------------------------------------------
    # 导出
    # -------------------------------------------------------------------------
    def export_data(self, format: str = "json", platform: Optional[str] = None) -> StorageResult:
        """Export processed records to ``export-{platform|all}-{date}.{json|csv}``."""
        format = format.lower()
        if format not in ("json", "csv"):
            return StorageResult(success=False, message=f"Unsupported export format: {format}")
        try:
            records = self.load_processed(platform)
        except StorageError as e:
            logger.error(f"Export failed: {e}")
            return StorageResult(success=False, message=str(e))

        path = self.data_dir / f"export-{platform or 'all'}-{utc_today_str()}.{format}"
        try:
            if format == "json":
                self._write_json(path, [r.to_dict() for r in records])
            else:
                self._write_csv(path, records)
        except OSError as e:
            logger.error(f"Export failed: {e}")
            return StorageResult(success=False, message=f"Export failed: {e}")

        logger.info(f"Exported {len(records)} contest(s) to {format.upper()} -> {path}")
        return StorageResult(success=True, path=str(path), count=len(records), message=f"Exported {len(records)} contests")

    def _write_csv(self, path: Path, records: List[CanonicalRecord]) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                f.write(CSV_HEADER + "\n")
                # QUOTE_ALL: 所有字段加引号，字段内引号加倍
                writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
                for r in records:
                    writer.writerow([
                        r.title or "",
                        r.platform or "",
                        r.url or "",
                        r.status or "",
                        r.deadline or "",
                        r.prize or "",
                        (r.description or "")[:CSV_DESCRIPTION_LENGTH] + "...",
                    ])
            os.replace(tmp_path, path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    # -------------------------------------------------------------------------
    # 清理与归档
    # -------------------------------------------------------------------------
    def cleanup(self, days_to_keep: Optional[int] = None) -> int:
        """Delete dated snapshots older than the retention window.

        ``-latest.json`` 和 feed.json 永不删除。

        Returns:
            int: Number of files removed.
        """
        days = settings.data_retention_days if days_to_keep is None else days_to_keep
        cutoff = (utc_now() - timedelta(days=days)).timestamp()
        removed = 0
        for directory in (self.raw_dir, self.processed_dir):
            for path in directory.iterdir():
                if not path.is_file() or not _DATED_RE.match(path.name):
                    continue
                if path.stat().st_mtime < cutoff:
                    try:
                        path.unlink()
                        removed += 1
                        logger.info(f"Cleaned up old file: {path.name}")
                    except OSError as e:
                        logger.warning(f"Failed to remove {path}: {e}")
        return removed

    def archived_ids(self) -> Set[str]:
        """Ids present in any archive file."""
        ids: Set[str] = set()
        for path in self.archive_dir.glob("archive-*.json"):
            for item in self._load_contests(path):
                if isinstance(item, dict) and item.get("id"):
                    ids.add(item["id"])
        return ids

    @staticmethod
    def _archive_reference(record: CanonicalRecord) -> Optional[datetime]:
        if record.deadline:
            return parse_iso(record.deadline)
        return parse_iso(record.last_updated)

    def archive_ended(self, cutoff_days: Optional[int] = None, now: Optional[datetime] = None) -> StorageResult:
        """Move long-ended records from the aggregate latest into archive/.

        status 为 ended 且截止日期（无截止日期时用 last_updated）早于
        cutoff_days 天前的记录，按 id 合并写入 archive/archive-{date}.json，
        已在任一归档文件中的 id 跳过；聚合 latest 用剩余记录重写。
        """
        days = settings.archive_after_days if cutoff_days is None else cutoff_days
        cutoff = (now or utc_now()) - timedelta(days=days)
        try:
            records = self.load_processed()
            already = self.archived_ids()
        except StorageError as e:
            logger.error(f"Archive failed: {e}")
            return StorageResult(success=False, message=str(e))

        to_archive: List[CanonicalRecord] = []
        remaining: List[CanonicalRecord] = []
        for record in records:
            reference = self._archive_reference(record)
            if record.status == "ended" and reference is not None and reference < cutoff:
                to_archive.append(record)
            else:
                remaining.append(record)

        fresh = [r for r in to_archive if r.id not in already]
        if not to_archive:
            return StorageResult(success=True, count=0, message="Nothing to archive")

        archive_path = self.archive_dir / f"archive-{utc_today_str()}.json"
        try:
            merged: Dict[str, Dict[str, Any]] = {}
            if archive_path.exists():
                for item in self._load_contests(archive_path):
                    if isinstance(item, dict) and item.get("id"):
                        merged[item["id"]] = item
            for record in fresh:
                merged[record.id] = record.to_dict()
            if fresh:
                self._write_json(archive_path, {
                    "timestamp": iso_now(),
                    "contestCount": len(merged),
                    "contests": list(merged.values()),
                })
            self._rewrite_aggregate_latest(remaining)
        except (OSError, StorageError) as e:
            logger.error(f"Archive failed: {e}")
            return StorageResult(success=False, message=f"Archive failed: {e}")

        logger.info(
            f"Archived {len(fresh)} ended contest(s) ({len(to_archive) - len(fresh)} already archived), "
            f"{len(remaining)} remain"
        )
        return StorageResult(
            success=True,
            path=str(archive_path) if fresh else None,
            count=len(fresh),
            message=f"Archived {len(fresh)} contests",
        )

    def _rewrite_aggregate_latest(self, records: Iterable[CanonicalRecord]) -> None:
        records = list(records)
        timestamp = iso_now()
        self._write_json(self.processed_dir / f"{AGGREGATE_NAME}-latest.json", {
            "platform": "all",
            "timestamp": timestamp,
            "contestCount": len(records),
            "contests": [r.to_dict() for r in records],
            "metadata": {
                "version": PROCESSED_DATA_VERSION,
                "dataStructure": "CanonicalRecord",
                "lastUpdated": timestamp,
            },
        })

    # -------------------------------------------------------------------------
    # 统计
    # -------------------------------------------------------------------------
    def get_storage_stats(self) -> Dict[str, Any]:
        """File counts, total size, last update and platforms seen."""
        def files(directory: Path) -> List[Path]:
            return [p for p in directory.iterdir() if p.is_file()] if directory.exists() else []

        raw_files = files(self.raw_dir)
        processed_files = files(self.processed_dir)
        backup_files = files(self.backup_dir)
        archive_files = files(self.archive_dir)

        platforms = sorted({
            m.group("scope") for m in (_SNAPSHOT_RE.match(p.name) for p in raw_files) if m
        })
        aggregate = self.processed_dir / f"{AGGREGATE_NAME}-latest.json"
        last_update = None
        if aggregate.exists():
            last_update = datetime.fromtimestamp(aggregate.stat().st_mtime, tz=utc_now().tzinfo).isoformat()

        return {
            "raw_files": len(raw_files),
            "processed_files": len(processed_files),
            "backup_files": len(backup_files),
            "archive_files": len(archive_files),
            "total_size": sum(p.stat().st_size for p in raw_files + processed_files + backup_files + archive_files),
            "last_update": last_update,
            "platforms": platforms,
        }
