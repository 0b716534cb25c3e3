# interfaces.py
# SPDX-License-Identifier: MIT
"""Interfaces and protocols shared by the walker, the pipeline and the pool."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TypeVar, runtime_checkable

__all__ = [
    "FileInfo",
    "HistoryEntry",
    "VcsClient",
    "FileFilter",
    "TaskWorker",
]


# -----------------------------------------------------------------------------
# Shared data types
# -----------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FileInfo:
    """
    A file present in the working tree of a checked-out branch.

    Attributes:
        filename (str): Repository-relative POSIX path, e.g. ``src/app.js``.
    """
    filename: str


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """
    One revision of a file as reported by the file history.

    Attributes:
        commit (str): Full commit hash.
        filename (str): Repository-relative path of the file in that commit
            (differs from the current name when the file was renamed).
        date (int): Commit timestamp in seconds since the epoch.
    """
    commit: str
    filename: str
    date: int = 0


# -----------------------------------------------------------------------------
# Collaborator protocols
# -----------------------------------------------------------------------------

@runtime_checkable
class VcsClient(Protocol):
    """
    Version-control access used by the mining pipeline.

    Boolean operations report failure through their return value; the
    remaining operations raise when the repository cannot be queried.
    """

    def clone(self, url: str, dest: Path) -> bool:
        """Clone ``url`` into ``dest``; return False when cloning fails."""
        ...

    def list_branches(self, path: Path) -> set[str]:
        """Return the short names of all branches of the clone."""
        ...

    def current_branch(self, path: Path) -> str:
        """Return the name of the branch currently checked out."""
        ...

    def checkout(self, path: Path, branch: str) -> bool:
        """Check ``branch`` out; return False when the checkout fails."""
        ...

    def list_files(self, path: Path) -> list[FileInfo]:
        """List files in the working tree of the current branch."""
        ...

    def file_history(self, path: Path, file: FileInfo) -> list[HistoryEntry]:
        """Return the history of ``file`` across renames, oldest first."""
        ...

    def file_content_at(self, path: Path, entry: HistoryEntry) -> bytes | None:
        """Return the file body at ``entry`` or None when it cannot be read."""
        ...


@runtime_checkable
class FileFilter(Protocol):
    """Accept/deny decision for repository-relative filenames."""

    def check(self, filename: str) -> tuple[bool, bool]:
        """
        Classify a filename.

        Returns:
            tuple[bool, bool]: ``(accepted, explicitly_denied)``. A file that
            simply matches nothing is ``(False, False)``.
        """
        ...


T_contra = TypeVar("T_contra", contravariant=True)


@runtime_checkable
class TaskWorker(Protocol[T_contra]):
    """Per-thread task runner driven by :class:`~githarvest.core.concurrency.WorkerPool`."""

    def run(self, task: T_contra) -> None:
        """Process one task to completion."""
        ...
