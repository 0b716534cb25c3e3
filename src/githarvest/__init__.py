# __init__.py
# SPDX-License-Identifier: MIT
"""
Top-level package exports for :mod:`githarvest`.

githarvest clones repositories listed in a CSV feed, walks every branch and
the history of every matching file, and stores each unique file body once
in a content-addressed tree shared by all projects of a run.

The symbols in :data:`__all__` are the supported surface:

- Build a configuration via :class:`HarvestConfig` or load one from TOML/JSON
  with :func:`load_config_from_path`.
- Run it with :class:`Ingestor` (``Ingestor(cfg).harvest("feed.csv")``).
- Swap in another :class:`VcsClient` or :class:`FileFilter` to mine without
  the ``git`` binary or with custom patterns.

Example::

    >>> from pathlib import Path
    >>> from githarvest import HarvestConfig, Ingestor
    >>> cfg = HarvestConfig()
    >>> cfg.output.root = Path("out")
    >>> summary = Ingestor(cfg).harvest("projects.csv")
"""

from __future__ import annotations

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("githarvest")
except Exception:  # PackageNotFoundError or runtime env oddities
    __version__ = "0.0.0+unknown"


from .core.concurrency import WorkerPool
from .core.config import (
    GitConfig,
    HarvestConfig,
    LoggingConfig,
    OutputConfig,
    PatternConfig,
    PoolConfig,
    load_config_from_path,
)
from .core.content_store import ContentStore, StorageError
from .core.ingest import Ingestor, OutputLayout
from .core.interfaces import FileFilter, FileInfo, HistoryEntry, TaskWorker, VcsClient
from .core.log import configure_logging, get_logger
from .core.pipeline import CloneError, ProjectPipeline, RunStats
from .core.projects import Project, ProjectIdAllocator
from .core.snapshots import BranchSnapshot, FileSnapshot, FileSnapshotIndex
from .core.walker import BranchWalker
from .sources.feed import FeedError, iter_project_feed
from .sources.patterns import PatternList
from .vcs.git import GitClient, GitError

__all__ = [
    "__version__",
    # config
    "HarvestConfig",
    "OutputConfig",
    "GitConfig",
    "PatternConfig",
    "PoolConfig",
    "LoggingConfig",
    "load_config_from_path",
    # orchestration
    "Ingestor",
    "OutputLayout",
    "WorkerPool",
    "ProjectPipeline",
    "RunStats",
    "BranchWalker",
    # data model
    "Project",
    "ProjectIdAllocator",
    "FileSnapshot",
    "FileSnapshotIndex",
    "BranchSnapshot",
    "ContentStore",
    # collaborators
    "VcsClient",
    "FileFilter",
    "TaskWorker",
    "FileInfo",
    "HistoryEntry",
    "GitClient",
    "PatternList",
    "iter_project_feed",
    # errors
    "CloneError",
    "GitError",
    "StorageError",
    "FeedError",
    # logging
    "configure_logging",
    "get_logger",
]
