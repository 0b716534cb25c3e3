# records.py
# SPDX-License-Identifier: MIT
"""Writers for per-project records, failed-project logs and run summaries."""
from __future__ import annotations

import csv
import json
import os
import threading
from collections.abc import Iterator, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.content_store import StorageError
from ..core.log import get_logger
from ..core.projects import Project
from ..core.sharding import DEFAULT_SHARD_SIZE, id_to_path
from ..core.snapshots import BranchSnapshot, FileSnapshotIndex

log = get_logger(__name__)

__all__ = [
    "FAILED_FIELDS",
    "write_json_atomic",
    "build_project_record",
    "ProjectRecordWriter",
    "FailedProjectsLog",
    "write_run_summary",
    "iter_project_records",
    "utc_timestamp",
]

FAILED_FIELDS = ("url", "id", "reason")


def utc_timestamp() -> str:
    """Current UTC time in ISO 8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def write_json_atomic(path: Path, payload: Mapping[str, Any]) -> Path:
    """Write ``payload`` as JSON via a temp file moved into place.

    Raises:
        StorageError: If the file cannot be written.
    """
    tmp = path.with_name(f"{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as fp:
            json.dump(payload, fp, ensure_ascii=False, indent=2)
            fp.write("\n")
        os.replace(tmp, path)
    except OSError as exc:
        raise StorageError(f"Unable to write {path}: {exc}") from exc
    return path


def build_project_record(
    project: Project,
    *,
    status: str,
    index: FileSnapshotIndex | None = None,
    branches: Mapping[str, BranchSnapshot] | None = None,
    error: str | None = None,
    started_at: str | None = None,
    finished_at: str | None = None,
) -> dict[str, Any]:
    """Assemble the JSON record describing one processed project."""
    return {
        "id": project.id,
        "url": project.url,
        "status": status,
        "error": error,
        "has_denied_files": project.has_denied_files,
        "snapshots": index.as_records() if index is not None else [],
        "branches": {
            name: list(snap.snapshot_ids) for name, snap in sorted((branches or {}).items())
        },
        "started_at": started_at,
        "finished_at": finished_at,
    }


class ProjectRecordWriter:
    """Write project records under ``projects/<shard>/<id>.json``."""

    def __init__(self, root: Path, *, shard_size: int = DEFAULT_SHARD_SIZE) -> None:
        self.root = Path(root)
        self.shard_size = shard_size

    def path_for(self, project_id: int) -> Path:
        return id_to_path(self.root, project_id, suffix=".json", shard_size=self.shard_size)

    def write(self, record: Mapping[str, Any]) -> Path:
        return write_json_atomic(self.path_for(int(record["id"])), record)


class FailedProjectsLog:
    """Append-only ``url,id,reason`` CSV shared by all workers."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, project: Project, reason: str) -> None:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                new_file = not self.path.exists() or self.path.stat().st_size == 0
                with open(self.path, "a", encoding="utf-8", newline="") as fp:
                    writer = csv.writer(fp)
                    if new_file:
                        writer.writerow(FAILED_FIELDS)
                    writer.writerow([project.url, project.id, reason])
            except OSError as exc:
                raise StorageError(f"Unable to append to {self.path}: {exc}") from exc

    def read(self) -> list[dict[str, str]]:
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8", newline="") as fp:
            return list(csv.DictReader(fp))


def write_run_summary(stats_dir: Path, summary: Mapping[str, Any], *, stamp: datetime | None = None) -> Path:
    """Write ``summary`` to ``stats/run-<UTC timestamp>.json`` and return the path."""
    when = stamp or datetime.now(timezone.utc)
    name = f"run-{when.strftime('%Y%m%dT%H%M%SZ')}.json"
    target = Path(stats_dir) / name
    n = 1
    while target.exists():
        target = Path(stats_dir) / f"run-{when.strftime('%Y%m%dT%H%M%SZ')}-{n}.json"
        n += 1
    return write_json_atomic(target, summary)


def iter_project_records(projects_root: Path) -> Iterator[dict[str, Any]]:
    """Yield every project record under ``projects_root`` ordered by id."""
    paths = []
    for path in Path(projects_root).glob("*/*.json"):
        try:
            paths.append((int(path.stem), path))
        except ValueError:
            log.debug("Ignoring unexpected file %s", path)
    for _, path in sorted(paths):
        with open(path, encoding="utf-8") as fp:
            yield json.load(fp)
