# pipeline.py
# SPDX-License-Identifier: MIT
"""
Per-project mining pipeline.

A :class:`ProjectPipeline` is the task runner owned by one worker thread. For
each project it clones the repository into ``temp/<id>``, walks every
branch, deletes the clone and writes the project record. Failures that
compromise the project (clone, git, storage) mark it failed; they never
escape to the pool.
"""
from __future__ import annotations

import shutil
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..sinks.records import FailedProjectsLog, ProjectRecordWriter, build_project_record, utc_timestamp
from ..vcs.git import GitError
from .content_store import ContentStore, StorageError
from .interfaces import FileFilter, VcsClient
from .log import get_logger
from .projects import Project
from .snapshots import BranchSnapshot, FileSnapshotIndex
from .walker import BranchWalker, WalkStats

log = get_logger(__name__)

__all__ = ["CloneError", "RunStats", "ProjectPipeline"]


class CloneError(RuntimeError):
    """Raised when a project cannot be cloned."""


class RunStats:
    """Thread-safe counters for one run, plus the list of failed projects."""

    COUNTERS = (
        "projects_scheduled",
        "projects_ok",
        "projects_failed",
        "feed_errors",
        "branches",
        "checkout_failures",
        "files_accepted",
        "files_denied",
        "denied_projects",
        "snapshots",
        "skipped_revisions",
        "storage_errors",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = dict.fromkeys(self.COUNTERS, 0)
        self._failed: list[dict[str, Any]] = []

    def incr(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown counter {name!r}")
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def add_walk(self, walk: WalkStats) -> None:
        with self._lock:
            for key, value in walk.as_dict().items():
                self._counts[key] += value

    def record_failure(self, project: Project, reason: str) -> None:
        with self._lock:
            self._counts["projects_failed"] += 1
            self._failed.append({"url": project.url, "id": project.id, "reason": reason})

    @property
    def failed_projects(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(item) for item in self._failed]

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            data: dict[str, Any] = dict(self._counts)
            data["failed_projects"] = [dict(item) for item in self._failed]
        return data


class ProjectPipeline:
    """Clone, walk, clean up and record one project at a time.

    Args:
        vcs (VcsClient): Repository access.
        file_filter (FileFilter): Accept/deny decision per file.
        content_store (ContentStore): Content store shared by all workers.
        temp_root (Path): Parent of the per-project clone directories.
        records (ProjectRecordWriter | None): Destination of project records.
        failed_log (FailedProjectsLog | None): Destination of failed projects.
        stats (RunStats | None): Run counters shared by all workers.
    """

    def __init__(
        self,
        vcs: VcsClient,
        file_filter: FileFilter,
        content_store: ContentStore,
        temp_root: Path,
        *,
        records: ProjectRecordWriter | None = None,
        failed_log: FailedProjectsLog | None = None,
        stats: RunStats | None = None,
    ) -> None:
        self.vcs = vcs
        self.file_filter = file_filter
        self.content_store = content_store
        self.temp_root = Path(temp_root)
        self.records = records
        self.failed_log = failed_log
        self.stats = stats or RunStats()

    def run(self, project: Project) -> None:
        log.info("Processing task %s", project)
        started_at = utc_timestamp()
        index = FileSnapshotIndex()
        walker = BranchWalker(self.vcs, self.file_filter, self.content_store, index=index)
        branches: Mapping[str, BranchSnapshot] = {}
        error: str | None = None
        try:
            self.clone(project)
            branches = walker.walk(project)
        except (CloneError, GitError, StorageError) as exc:
            error = str(exc)
            if isinstance(exc, StorageError):
                self.stats.incr("storage_errors")
            log.warning("Project %s failed: %s", project, exc)
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"
            log.exception("Unexpected error while processing %s", project)
        finally:
            self.cleanup(project)

        if project.has_denied_files:
            self.stats.incr("denied_projects")
        if error is None:
            self.stats.incr("projects_ok")
            self.stats.add_walk(walker.stats)
        else:
            self.stats.record_failure(project, error)
            self._log_failure(project, error)
            # A failed project keeps no partial snapshot data, nor its counters.
            index, branches = FileSnapshotIndex(), {}

        record = build_project_record(
            project,
            status="ok" if error is None else "failed",
            index=index,
            branches=branches,
            error=error,
            started_at=started_at,
            finished_at=utc_timestamp(),
        )
        self._write_record(project, record)
        log.info(
            "Finished %s: %d snapshots across %d branches",
            project,
            len(index),
            len(branches),
        )

    def clone(self, project: Project) -> Path:
        """Clone ``project`` into ``temp/<id>`` after removing any stale copy.

        Raises:
            CloneError: If the clone fails.
        """
        dest = self.temp_root / str(project.id)
        if dest.exists():
            log.info("Removing stale clone %s", dest)
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        project.local_path = dest
        if not self.vcs.clone(project.url, dest):
            raise CloneError(f"Unable to clone project {project.url}")
        log.info("Cloned %s into %s", project, dest)
        return dest

    def cleanup(self, project: Project) -> None:
        """Delete the project's clone directory if present."""
        path = project.local_path
        if path is None:
            return
        try:
            if path.exists():
                shutil.rmtree(path)
                log.info("Deleted %s", path)
        except OSError as exc:
            log.warning("Unable to delete clone %s: %s", path, exc)
        finally:
            project.local_path = None

    def _log_failure(self, project: Project, reason: str) -> None:
        if self.failed_log is None:
            return
        try:
            self.failed_log.append(project, reason)
        except StorageError as exc:
            self.stats.incr("storage_errors")
            log.error("%s", exc)

    def _write_record(self, project: Project, record: Mapping[str, Any]) -> None:
        if self.records is None:
            return
        try:
            self.records.write(record)
        except StorageError as exc:
            self.stats.incr("storage_errors")
            log.error("Unable to write record for %s: %s", project, exc)
