# patterns.py
# SPDX-License-Identifier: MIT
"""Filename accept/deny lists deciding which repository files are mined."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase
from pathlib import PurePosixPath

from ..core.config import PatternConfig

__all__ = ["PatternList", "pattern_list_from_config", "PRESETS"]


def _glob_match(pattern: str, rel: str) -> bool:
    """Match a glob against a repository-relative POSIX path.

    Like .gitignore: a pattern without "/" matches the file name or any
    directory above it; a pattern with "/" matches the trailing path
    segments, or the whole path when it starts with "/".
    """
    p = PurePosixPath(rel)
    if "/" not in pattern:
        return any(fnmatchcase(part, pattern) for part in p.parts)
    if pattern.startswith("/"):
        anchored = pattern.lstrip("/")
        return len(p.parts) == len(PurePosixPath(anchored).parts) and p.match(anchored)
    return p.match(pattern)


class PatternList:
    """Ordered accept and deny globs.

    Deny wins over accept. A path matching neither list is rejected without
    being flagged as denied.
    """

    def __init__(self, accept: Sequence[str] | None = None, deny: Sequence[str] | None = None) -> None:
        self.accept: list[str] = [p for p in (accept or []) if p]
        self.deny: list[str] = [p for p in (deny or []) if p]

    def with_additional(self, accept: Iterable[str] = (), deny: Iterable[str] = ()) -> PatternList:
        """Return a new list with extra globs appended."""
        return PatternList([*self.accept, *accept], [*self.deny, *deny])

    def check(self, filename: str) -> tuple[bool, bool]:
        """Return ``(accepted, explicitly_denied)`` for a relative path."""
        rel = filename.replace("\\", "/").removeprefix("./")
        if any(_glob_match(p, rel) for p in self.deny):
            return False, True
        if any(_glob_match(p, rel) for p in self.accept):
            return True, False
        return False, False

    def __repr__(self) -> str:
        return f"PatternList(accept={self.accept!r}, deny={self.deny!r})"

    @classmethod
    def javascript(cls) -> PatternList:
        return cls(
            accept=["*.js"],
            deny=["*.min.js", "node_modules", "bower_components"],
        )

    @classmethod
    def everything(cls) -> PatternList:
        return cls(accept=["*"])


PRESETS = {
    "javascript": PatternList.javascript,
    "everything": PatternList.everything,
}


def pattern_list_from_config(cfg: PatternConfig) -> PatternList:
    """Build the pattern list described by ``cfg``.

    Raises:
        ValueError: If ``cfg.preset`` names an unknown preset.
    """
    if cfg.preset:
        try:
            base = PRESETS[cfg.preset.strip().lower()]()
        except KeyError as exc:
            supported = ", ".join(sorted(PRESETS))
            raise ValueError(f"Unknown pattern preset {cfg.preset!r}; supported presets are: {supported}") from exc
    else:
        base = PatternList()
    return base.with_additional(cfg.accept, cfg.deny)
