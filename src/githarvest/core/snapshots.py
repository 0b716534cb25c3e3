# snapshots.py
# SPDX-License-Identifier: MIT
"""
File and branch snapshots.

The miner does not work with files but with file snapshots: one version of
one file, identified by the commit hash and the file's relative path in that
commit. Each project keeps its own :class:`FileSnapshotIndex`; snapshot ids
are dense and assigned in insertion order. Branch snapshots record which file
snapshots a branch head carried when it was scanned.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from .interfaces import HistoryEntry

__all__ = ["FileSnapshot", "FileSnapshotIndex", "BranchSnapshot", "SnapshotKey"]

SnapshotKey = tuple[str, str]


@dataclass(slots=True, eq=False)
class FileSnapshot:
    """One observed version of one file.

    Equality and hashing use ``(commit, rel_path)`` only; ``id`` and
    ``content_id`` stay ``-1`` until the snapshot is resolved and indexed.
    """
    commit: str
    rel_path: str
    id: int = -1
    content_id: int = -1
    time: int = 0

    @classmethod
    def from_history(cls, entry: HistoryEntry) -> FileSnapshot:
        return cls(commit=entry.commit, rel_path=entry.filename, time=entry.date)

    @property
    def key(self) -> SnapshotKey:
        return (self.commit, self.rel_path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileSnapshot):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def as_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "commit": self.commit,
            "path": self.rel_path,
            "content_id": self.content_id,
            "time": self.time,
        }


class FileSnapshotIndex:
    """Per-project set of file snapshots keyed by ``(commit, path)``.

    Not shared between projects, so no locking is needed.
    """

    def __init__(self) -> None:
        self._by_key: dict[SnapshotKey, FileSnapshot] = {}
        self._ordered: list[FileSnapshot] = []

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[FileSnapshot]:
        return iter(self._ordered)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, FileSnapshot):
            key = key.key
        return key in self._by_key

    def contains(self, key: SnapshotKey | FileSnapshot) -> bool:
        return key in self

    def get(self, key: SnapshotKey) -> FileSnapshot | None:
        return self._by_key.get(key)

    def next_id(self) -> int:
        return len(self._ordered)

    def insert(self, snapshot: FileSnapshot) -> FileSnapshot:
        """Assign the next id to ``snapshot`` and add it.

        Inserting a key that is already present is a no-op and returns the
        snapshot already stored under that key.
        """
        existing = self._by_key.get(snapshot.key)
        if existing is not None:
            return existing
        snapshot.id = len(self._ordered)
        self._by_key[snapshot.key] = snapshot
        self._ordered.append(snapshot)
        return snapshot

    def as_records(self) -> list[dict[str, Any]]:
        return [s.as_record() for s in self._ordered]


@dataclass(slots=True)
class BranchSnapshot:
    """File snapshot ids present at the head of a branch when it was scanned."""
    branch: str
    snapshot_ids: list[int] = field(default_factory=list)
    _seen: set[int] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._seen.update(self.snapshot_ids)

    def add(self, snapshot_id: int) -> None:
        if snapshot_id in self._seen:
            return
        self._seen.add(snapshot_id)
        self.snapshot_ids.append(snapshot_id)
