# projects.py
# SPDX-License-Identifier: MIT
"""Projects to mine and the shared generator handing out their ids."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

__all__ = ["Project", "ProjectIdAllocator"]


@dataclass(slots=True)
class Project:
    """One repository to mine.

    Attributes:
        url (str): Clone source.
        id (int): Unique project id.
        local_path (Path | None): Clone location, assigned when the task runs.
        has_denied_files (bool): Set when any file matched a deny pattern.
    """
    url: str
    id: int
    local_path: Path | None = None
    has_denied_files: bool = False

    def __str__(self) -> str:
        return f"{self.url} [{self.id}]"


class ProjectIdAllocator:
    """Thread-safe source of unique, increasing project ids.

    Explicit ids supplied from persisted state advance the counter past
    them, so later auto-assigned ids never collide.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("start must be non-negative")
        self._next = start
        self._lock = threading.Lock()

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._next

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def observe(self, explicit_id: int) -> None:
        """Advance the counter past ``explicit_id`` if needed."""
        if explicit_id < 0:
            raise ValueError(f"project ids must be non-negative; got {explicit_id}")
        with self._lock:
            if self._next <= explicit_id:
                self._next = explicit_id + 1

    def new_project(self, url: str, project_id: int | None = None) -> Project:
        """Create a project, auto-assigning an id unless one is given."""
        if project_id is None:
            return Project(url=url, id=self.allocate())
        self.observe(project_id)
        return Project(url=url, id=project_id)
