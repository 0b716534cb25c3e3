# walker.py
# SPDX-License-Identifier: MIT
"""Branch and file-history traversal for one cloned project."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

from .content_store import ContentStore
from .interfaces import FileFilter, FileInfo, VcsClient
from .log import get_logger
from .projects import Project
from .snapshots import BranchSnapshot, FileSnapshot, FileSnapshotIndex

log = get_logger(__name__)

__all__ = ["BranchWalker", "WalkStats"]


@dataclass(slots=True)
class WalkStats:
    """Counters collected while walking one project."""
    branches: int = 0
    checkout_failures: int = 0
    files_accepted: int = 0
    files_denied: int = 0
    snapshots: int = 0
    skipped_revisions: int = 0

    def as_dict(self) -> dict[str, int]:
        return {f.name: int(getattr(self, f.name)) for f in fields(self)}


class BranchWalker:
    """Visit every branch of a clone and index the history of matching files.

    The current branch is processed first, then every other branch is
    checked out in turn. A branch that cannot be checked out is skipped.
    Each ``(commit, path)`` is fetched at most once per project, however many
    branches show it.

    Args:
        vcs (VcsClient): Repository access.
        file_filter (FileFilter): Accept/deny decision per file.
        content_store (ContentStore): Shared content store.
        index (FileSnapshotIndex | None): The project's snapshot index; a
            fresh one is created when omitted.
    """

    def __init__(
        self,
        vcs: VcsClient,
        file_filter: FileFilter,
        content_store: ContentStore,
        *,
        index: FileSnapshotIndex | None = None,
    ) -> None:
        self.vcs = vcs
        self.file_filter = file_filter
        self.content_store = content_store
        self.index = index if index is not None else FileSnapshotIndex()
        self.stats = WalkStats()

    def walk(self, project: Project) -> dict[str, BranchSnapshot]:
        """Walk all branches of ``project`` and return one record per branch visited."""
        path = self._require_path(project)
        current = self.vcs.current_branch(path)
        remaining = self.vcs.list_branches(path)
        remaining.discard(current)

        branches: dict[str, BranchSnapshot] = {}
        branches[current] = self.process_branch(project, current)
        for branch in sorted(remaining):
            if not self.vcs.checkout(path, branch):
                log.warning("Unable to checkout branch %s of %s, skipping", branch, project)
                self.stats.checkout_failures += 1
                continue
            branches[branch] = self.process_branch(project, branch)
        return branches

    def process_branch(self, project: Project, branch: str) -> BranchSnapshot:
        """Index the files of the checked-out ``branch``."""
        log.info("Analyzing branch %s of %s", branch, project)
        path = self._require_path(project)
        self.stats.branches += 1
        record = BranchSnapshot(branch)
        for file in self.vcs.list_files(path):
            accepted, denied = self.file_filter.check(file.filename)
            if denied:
                project.has_denied_files = True
                self.stats.files_denied += 1
                continue
            if not accepted:
                continue
            self.stats.files_accepted += 1
            head = self._process_history(path, file)
            if head is not None:
                record.add(head)
        return record

    def _process_history(self, path: Path, file: FileInfo) -> int | None:
        """Index unseen revisions of ``file``; return the id of its newest one."""
        head: int | None = None
        for entry in self.vcs.file_history(path, file):
            existing = self.index.get((entry.commit, entry.filename))
            if existing is not None:
                head = existing.id
                continue
            body = self.vcs.file_content_at(path, entry)
            if body is None:
                log.debug("Skipping %s at %s: content unavailable", entry.filename, entry.commit)
                self.stats.skipped_revisions += 1
                head = None
                continue
            snapshot = FileSnapshot.from_history(entry)
            snapshot.content_id = self.content_store.get_content_id(body)
            head = self.index.insert(snapshot).id
            self.stats.snapshots += 1
        return head

    @staticmethod
    def _require_path(project: Project) -> Path:
        if project.local_path is None:
            raise ValueError(f"Project {project} has not been cloned")
        return project.local_path
