# feed.py
# SPDX-License-Identifier: MIT

"""CSV feed of repositories to mine: one project per record."""

from __future__ import annotations

import csv
import gzip
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..core.log import get_logger
from ..core.projects import Project, ProjectIdAllocator

__all__ = ["FeedError", "FeedRecord", "iter_feed_records", "iter_project_feed"]

log = get_logger(__name__)


class FeedError(ValueError):
    """A malformed feed record."""

    def __init__(self, path: Path, lineno: int, message: str) -> None:
        super().__init__(f"{path}, line {lineno}: {message}")
        self.path = path
        self.lineno = lineno


@dataclass(frozen=True, slots=True)
class FeedRecord:
    url: str
    project_id: int | None
    lineno: int


def _open_feed(path: Path):
    """Open a plain or gzip-compressed feed in text mode."""
    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", encoding="utf-8", newline="")
    # newline="" ensures correct handling of quoted fields for the csv module.
    return open(path, encoding="utf-8", newline="")


def _parse_row(path: Path, lineno: int, row: Sequence[str]) -> FeedRecord:
    fields = [cell.strip() for cell in row]
    if len(fields) == 1 and fields[0]:
        return FeedRecord(url=fields[0], project_id=None, lineno=lineno)
    if len(fields) == 2 and fields[0]:
        try:
            project_id = int(fields[1], 10)
        except ValueError:
            raise FeedError(path, lineno, f"project id {fields[1]!r} is not an integer") from None
        if project_id < 0:
            raise FeedError(path, lineno, f"project id {project_id} is negative")
        return FeedRecord(url=fields[0], project_id=project_id, lineno=lineno)
    raise FeedError(path, lineno, f"expected 'url' or 'url,id', got {len(fields)} fields")


def iter_feed_records(
    path: str | Path,
    *,
    on_error: Callable[[FeedError], None] | None = None,
) -> Iterator[FeedRecord]:
    """Yield well-formed feed records from ``path``.

    Blank lines and lines starting with ``#`` are skipped. Malformed records
    are logged, passed to ``on_error`` and skipped; they never stop the feed.
    """
    feed_path = Path(path)
    with _open_feed(feed_path) as fp:
        for lineno, row in enumerate(csv.reader(fp), start=1):
            if not row or not any(cell.strip() for cell in row):
                continue
            if row[0].lstrip().startswith("#"):
                continue
            try:
                yield _parse_row(feed_path, lineno, row)
            except FeedError as exc:
                log.error("%s Invalid format of the project url input, skipping.", exc)
                if on_error is not None:
                    on_error(exc)


def iter_project_feed(
    path: str | Path,
    allocator: ProjectIdAllocator,
    *,
    on_error: Callable[[FeedError], None] | None = None,
) -> Iterator[Project]:
    """Yield a :class:`Project` per well-formed record in ``path``.

    Records without an id get the allocator's next id; explicit ids advance
    the allocator past them.
    """
    for record in iter_feed_records(path, on_error=on_error):
        yield allocator.new_project(record.url, record.project_id)
