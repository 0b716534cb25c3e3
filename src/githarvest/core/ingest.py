# ingest.py
# SPDX-License-Identifier: MIT
"""
Top-level orchestration of a mining run.

The :class:`Ingestor` owns everything shared between workers: the output
layout, the project id allocator, the content store and the run counters.
It seeds projects into a :class:`~githarvest.core.concurrency.WorkerPool`
whose workers each run a :class:`~githarvest.core.pipeline.ProjectPipeline`.

Typical use::

    >>> ingestor = Ingestor(HarvestConfig())
    >>> summary = ingestor.harvest("projects.csv")

or, step by step::

    >>> ingestor.initialize()
    >>> ingestor.spawn(4)
    >>> ingestor.run()
    >>> ingestor.feed_projects_from("projects.csv")
    >>> summary = ingestor.finish()
"""
from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..sinks.records import FailedProjectsLog, ProjectRecordWriter, utc_timestamp, write_run_summary
from ..sources.feed import FeedError, iter_project_feed
from ..sources.patterns import pattern_list_from_config
from ..vcs.git import GitClient
from .concurrency import WorkerPool
from .config import HarvestConfig
from .content_store import ContentStore
from .interfaces import FileFilter, VcsClient
from .log import get_logger
from .pipeline import ProjectPipeline, RunStats
from .projects import Project, ProjectIdAllocator

log = get_logger(__name__)

__all__ = ["OutputLayout", "Ingestor"]


@dataclass(frozen=True, slots=True)
class OutputLayout:
    """Directories of the output tree under ``root``."""
    root: Path

    @property
    def temp(self) -> Path:
        return self.root / "temp"

    @property
    def projects(self) -> Path:
        return self.root / "projects"

    @property
    def data(self) -> Path:
        return self.root / "data"

    @property
    def stats(self) -> Path:
        return self.root / "stats"

    @property
    def failed_csv(self) -> Path:
        return self.stats / "failed.csv"

    def create(self) -> None:
        for path in (self.root, self.temp, self.projects, self.data, self.stats):
            path.mkdir(parents=True, exist_ok=True)


class Ingestor:
    """Run the mining pipeline over a feed of projects.

    Args:
        config (HarvestConfig | None): Run configuration; defaults apply
            when omitted.
        vcs (VcsClient | None): Repository access. Defaults to a
            :class:`GitClient` built from ``config.git``.
        file_filter (FileFilter | None): Defaults to the pattern list
            described by ``config.patterns``.
        allocator (ProjectIdAllocator | None): Shared project id generator.
    """

    def __init__(
        self,
        config: HarvestConfig | None = None,
        *,
        vcs: VcsClient | None = None,
        file_filter: FileFilter | None = None,
        allocator: ProjectIdAllocator | None = None,
    ) -> None:
        self.config = config or HarvestConfig()
        self.config.validate()
        self.layout = OutputLayout(Path(self.config.output.root))
        self.vcs = vcs if vcs is not None else GitClient(self.config.git)
        self.file_filter = file_filter if file_filter is not None else pattern_list_from_config(self.config.patterns)
        self.allocator = allocator or ProjectIdAllocator()
        self.stats = RunStats()
        self._store: ContentStore | None = None
        self._records: ProjectRecordWriter | None = None
        self._failed_log: FailedProjectsLog | None = None
        self._pool: WorkerPool[Project] | None = None
        self._started_at: str | None = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    @property
    def content_store(self) -> ContentStore:
        if self._store is None:
            raise RuntimeError("Ingestor.initialize() has not been called")
        return self._store

    def initialize(self) -> None:
        """Create the output tree and open the content store."""
        if self._pool is not None:
            return
        self.layout.create()
        out = self.config.output
        self._store = ContentStore(self.layout.data, shard_size=out.content_shard_size)
        self._records = ProjectRecordWriter(self.layout.projects, shard_size=out.project_shard_size)
        self._failed_log = FailedProjectsLog(self.layout.failed_csv)
        self._pool = WorkerPool(self._make_worker)
        self._started_at = utc_timestamp()
        log.info("Output directory %s initialized", self.layout.root)

    def _make_worker(self) -> ProjectPipeline:
        return ProjectPipeline(
            self.vcs,
            self.file_filter,
            self.content_store,
            self.layout.temp,
            records=self._records,
            failed_log=self._failed_log,
            stats=self.stats,
        )

    def _require_pool(self) -> WorkerPool[Project]:
        if self._pool is None:
            raise RuntimeError("Ingestor.initialize() has not been called")
        return self._pool

    def default_workers(self) -> int:
        return self.config.pool.max_workers or os.cpu_count() or 1

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def spawn(self, n: int | None = None) -> None:
        self._require_pool().spawn(n or self.default_workers())

    def run(self) -> None:
        self._require_pool().run()

    def schedule(self, project: Project) -> None:
        self._require_pool().schedule(project)
        self.stats.incr("projects_scheduled")

    def schedule_url(self, url: str, project_id: int | None = None) -> Project:
        project = self.allocator.new_project(url, project_id)
        self.schedule(project)
        return project

    def feed_projects_from(self, path: str | Path) -> int:
        """Schedule every well-formed project in the CSV feed at ``path``.

        Returns:
            int: Number of projects scheduled.
        """
        def _on_error(exc: FeedError) -> None:
            self.stats.incr("feed_errors")

        count = 0
        for project in iter_project_feed(path, self.allocator, on_error=_on_error):
            self.schedule(project)
            count += 1
        log.info("Scheduled %d projects from %s", count, path)
        return count

    def wait(self) -> None:
        self._require_pool().wait()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def summary(self) -> dict[str, Any]:
        data = self.stats.as_dict()
        failed = data.pop("failed_projects")
        store = self.content_store.stats()
        data.update(
            {
                "contents": store.contents,
                "contents_new": store.new,
                "contents_reused": store.reused,
                "bytes_written": store.bytes_written,
            }
        )
        return {
            "output_root": str(self.layout.root),
            "workers": self._pool.size if self._pool is not None else 0,
            "started_at": self._started_at,
            "finished_at": utc_timestamp(),
            "counters": data,
            "failed_projects": failed,
        }

    def finish(self) -> dict[str, Any]:
        """Drain the pool, write the run summary and release resources."""
        pool = self._require_pool()
        pool.stop(drain=True)
        summary = self.summary()
        path = write_run_summary(self.layout.stats, summary)
        summary["summary_path"] = str(path)
        self.content_store.close()
        if not self.config.output.keep_temp:
            shutil.rmtree(self.layout.temp, ignore_errors=True)
        counters = summary["counters"]
        log.info(
            "Run complete: %d ok, %d failed, %d contents (%d new)",
            counters["projects_ok"],
            counters["projects_failed"],
            counters["contents"],
            counters["contents_new"],
        )
        return summary

    def harvest(self, feed: str | Path, *, workers: int | None = None) -> dict[str, Any]:
        """Initialize, mine every project in ``feed`` and return the run summary."""
        self.initialize()
        self.spawn(workers)
        self.run()
        try:
            self.feed_projects_from(feed)
        except BaseException:
            self._require_pool().stop(drain=False)
            self.content_store.close()
            raise
        return self.finish()
