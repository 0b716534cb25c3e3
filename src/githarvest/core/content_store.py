# content_store.py
# SPDX-License-Identifier: MIT
"""
Content-addressed storage for unique file bodies.

Every distinct byte sequence seen during a run is written exactly once to
``data/<shard>/<content_id>.raw``. Content ids are dense and assigned in
order of first sighting. The ``hash -> id`` table is shared by all worker
threads and persisted in SQLite so that a later run against the same output
root keeps extending the same id space.
"""

from __future__ import annotations

import hashlib
import os
import sqlite3
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from .log import get_logger
from .sharding import DEFAULT_SHARD_SIZE, closes_shard, id_to_path

log = get_logger(__name__)

__all__ = [
    "StorageError",
    "ContentIndex",
    "ContentStore",
    "ContentStoreStats",
    "content_hash",
]

RAW_SUFFIX = ".raw"


class StorageError(RuntimeError):
    """Raised when a content body or index row cannot be persisted."""


def content_hash(data: bytes | str) -> str:
    """Return the hex SHA-256 of ``data`` (str is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


@dataclass(slots=True)
class ContentStoreStats:
    contents: int = 0
    new: int = 0
    reused: int = 0
    bytes_written: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "contents": int(self.contents),
            "new": int(self.new),
            "reused": int(self.reused),
            "bytes_written": int(self.bytes_written),
        }


class ContentIndex:
    """SQLite table mapping content hashes to content ids.

    The index is not thread-safe on its own; :class:`ContentStore` owns the
    lock that serializes access. ``db_path=None`` keeps the index in memory.
    """

    def __init__(self, db_path: str | Path | None) -> None:
        self.db_path = Path(db_path).expanduser() if db_path is not None else None
        self._conn = self._connect()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        if self.db_path is None:
            return sqlite3.connect(":memory:", check_same_thread=False)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error:
            log.debug("Failed to set WAL pragmas on %s", self.db_path, exc_info=True)
        return conn

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS contents (
                content_id INTEGER PRIMARY KEY,
                content_hash TEXT NOT NULL UNIQUE,
                size INTEGER NOT NULL,
                stored INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        self._conn.commit()

    def load(self) -> tuple[dict[str, int], set[int]]:
        """Return the full ``hash -> id`` map and the ids not yet on disk."""
        mapping: dict[str, int] = {}
        unwritten: set[int] = set()
        for cid, digest, stored in self._conn.execute(
            "SELECT content_id, content_hash, stored FROM contents ORDER BY content_id"
        ):
            mapping[digest] = int(cid)
            if not stored:
                unwritten.add(int(cid))
        return mapping, unwritten

    def insert(self, content_id: int, digest: str, size: int) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO contents (content_id, content_hash, size, stored) VALUES (?, ?, ?, 0)",
                    (content_id, digest, size),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to record content {content_id} in {self.db_path}: {exc}") from exc

    def mark_stored(self, content_id: int) -> None:
        try:
            with self._conn:
                self._conn.execute("UPDATE contents SET stored = 1 WHERE content_id = ?", (content_id,))
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to mark content {content_id} as stored: {exc}") from exc

    def close(self) -> None:
        self._conn.close()


class ContentStore:
    """Deduplicating writer for file bodies.

    ``get_content_id`` is safe to call from many worker threads. The
    membership check and the id reservation happen in one critical section,
    so byte-identical bodies requested concurrently always share one id and
    are written once. The body itself is written outside the lock. Callers
    asking for bytes whose write is still in flight block until that write
    ends, so a returned id always names a body that is on disk.

    Args:
        root (Path | str): The ``data/`` directory.
        shard_size (int): Content bodies per shard directory.
        index_path (Path | str | None): SQLite index location. Defaults to
            ``root/contents.db``; pass ``":memory:"`` for a throwaway index.
        on_shard_closed (Callable[[Path], None] | None): Called on a
            background thread once the last id of a shard has been written.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        shard_size: int = DEFAULT_SHARD_SIZE,
        index_path: Path | str | None = None,
        on_shard_closed: Callable[[Path], None] | None = None,
    ) -> None:
        if shard_size < 1:
            raise ValueError("shard_size must be at least 1")
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.shard_size = shard_size
        if index_path is None:
            index_path = self.root / "contents.db"
        self._index = ContentIndex(None if str(index_path) == ":memory:" else index_path)
        self._lock = threading.Lock()
        self._ids, self._unwritten = self._index.load()
        self._next_id = len(self._ids)
        self._in_flight: dict[int, threading.Event] = {}
        self._stats = ContentStoreStats(contents=self._next_id)
        self._on_shard_closed = on_shard_closed or _log_closed_shard
        self._archiver: ThreadPoolExecutor | None = None
        if self._ids:
            log.info("Content index %s reseeded with %d entries", index_path, self._next_id)

    def __len__(self) -> int:
        with self._lock:
            return self._next_id

    def __enter__(self) -> ContentStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def path_for(self, content_id: int) -> Path:
        """Return the on-disk location of ``content_id``."""
        return id_to_path(self.root, content_id, suffix=RAW_SUFFIX, shard_size=self.shard_size)

    def read(self, content_id: int) -> bytes:
        return self.path_for(content_id).read_bytes()

    def get_content_id(self, data: bytes | str) -> int:
        """Return the content id of ``data``, storing it on first sighting.

        Returns only once the body is on disk. If a concurrent write of the
        same bytes fails, a waiting caller retries it.

        Raises:
            StorageError: If the body could not be written. The id stays
                reserved and the next request for the same bytes retries.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        digest = content_hash(data)
        while True:
            with self._lock:
                cid = self._ids.get(digest)
                pending = self._in_flight.get(cid) if cid is not None else None
                if pending is None:
                    if cid is None:
                        cid = self._next_id
                        self._index.insert(cid, digest, len(data))
                        self._next_id += 1
                        self._ids[digest] = cid
                        self._unwritten.add(cid)
                        self._stats.contents = self._next_id
                    elif cid not in self._unwritten:
                        self._stats.reused += 1
                        return cid
                    # else an earlier write failed and this caller retries it
                    self._in_flight[cid] = threading.Event()
                    break
            # another thread is writing these bytes; re-check once it is done
            pending.wait()

        try:
            self._write(cid, data)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(cid).set()
            if isinstance(exc, OSError):
                raise StorageError(f"Unable to store content {cid} at {self.path_for(cid)}: {exc}") from exc
            raise

        with self._lock:
            try:
                self._index.mark_stored(cid)
                self._unwritten.discard(cid)
                self._stats.new += 1
                self._stats.bytes_written += len(data)
            finally:
                self._in_flight.pop(cid).set()
        if closes_shard(cid, self.shard_size):
            self._schedule_shard_closed(self.path_for(cid).parent)
        return cid

    def _write(self, cid: int, data: bytes) -> None:
        target = self.path_for(cid)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f"{target.name}.tmp")
        with open(tmp, "wb") as fh:
            fh.write(data)
        os.replace(tmp, target)

    def _schedule_shard_closed(self, shard: Path) -> None:
        with self._lock:
            if self._archiver is None:
                self._archiver = ThreadPoolExecutor(max_workers=1, thread_name_prefix="shard-archiver")
            self._archiver.submit(self._run_shard_closed, shard)

    def _run_shard_closed(self, shard: Path) -> None:
        try:
            self._on_shard_closed(shard)
        except Exception:  # noqa: BLE001
            log.exception("Shard callback failed for %s", shard)

    def stats(self) -> ContentStoreStats:
        with self._lock:
            return ContentStoreStats(
                contents=self._stats.contents,
                new=self._stats.new,
                reused=self._stats.reused,
                bytes_written=self._stats.bytes_written,
            )

    def close(self) -> None:
        """Wait for pending shard callbacks and close the index."""
        archiver = self._archiver
        if archiver is not None:
            archiver.shutdown(wait=True)
            self._archiver = None
        with self._lock:
            self._index.close()


def _log_closed_shard(shard: Path) -> None:
    log.info("Content shard complete: %s", shard)
