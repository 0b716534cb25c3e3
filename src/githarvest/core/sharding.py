# sharding.py
# SPDX-License-Identifier: MIT
"""
Sharding helpers for id-addressed output trees.

Content bodies and project records are stored one file per id. To keep
directories small, every ``shard_size`` consecutive ids share a directory:
id ``1234`` with the default shard size lands in ``1/1234.raw``.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "DEFAULT_SHARD_SIZE",
    "shard_name",
    "shard_dir",
    "id_to_path",
    "closes_shard",
]

DEFAULT_SHARD_SIZE = 1000


def _check(item_id: int, shard_size: int) -> None:
    if shard_size < 1:
        raise ValueError("shard_size must be at least 1")
    if item_id < 0:
        raise ValueError(f"ids must be non-negative; got {item_id}")


def shard_name(item_id: int, shard_size: int = DEFAULT_SHARD_SIZE) -> str:
    """Return the directory name holding ``item_id``."""
    _check(item_id, shard_size)
    return str(item_id // shard_size)


def shard_dir(root: Path | str, item_id: int, shard_size: int = DEFAULT_SHARD_SIZE) -> Path:
    """Return the shard directory for ``item_id`` under ``root``."""
    return Path(root) / shard_name(item_id, shard_size)


def id_to_path(
    root: Path | str,
    item_id: int,
    *,
    suffix: str,
    shard_size: int = DEFAULT_SHARD_SIZE,
) -> Path:
    """Return the file path for ``item_id``, e.g. ``root/3/3141.raw``."""
    return shard_dir(root, item_id, shard_size) / f"{item_id}{suffix}"


def closes_shard(item_id: int, shard_size: int = DEFAULT_SHARD_SIZE) -> bool:
    """True when ``item_id`` is the last id that belongs to its shard."""
    _check(item_id, shard_size)
    return (item_id + 1) % shard_size == 0
