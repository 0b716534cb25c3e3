# parquet.py
# SPDX-License-Identifier: MIT
"""Flatten project records into a Parquet table (requires pyarrow)."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..core.log import get_logger
from .records import iter_project_records

log = get_logger(__name__)

__all__ = ["snapshot_rows", "export_parquet"]

COLUMNS = ("project_id", "project_url", "snapshot_id", "commit", "path", "content_id", "time", "branches")


def snapshot_rows(records: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """One row per (project, snapshot), listing the branches that carry it."""
    rows: list[dict[str, Any]] = []
    for record in records:
        by_snapshot: dict[int, list[str]] = {}
        for branch, ids in (record.get("branches") or {}).items():
            for sid in ids:
                by_snapshot.setdefault(int(sid), []).append(branch)
        for snap in record.get("snapshots") or []:
            sid = int(snap["id"])
            rows.append(
                {
                    "project_id": int(record["id"]),
                    "project_url": record.get("url"),
                    "snapshot_id": sid,
                    "commit": snap.get("commit"),
                    "path": snap.get("path"),
                    "content_id": int(snap.get("content_id", -1)),
                    "time": int(snap.get("time") or 0),
                    "branches": sorted(by_snapshot.get(sid, [])),
                }
            )
    return rows


def export_parquet(output_root: str | Path, out_path: str | Path) -> int:
    """Write every project record under ``output_root/projects`` to ``out_path``.

    Returns:
        int: Number of rows written.

    Raises:
        RuntimeError: If pyarrow is not installed.
    """
    try:
        import pyarrow as pa
        import pyarrow.parquet as pq
    except Exception as exc:
        raise RuntimeError(
            "PyArrow is required for Parquet export; install githarvest[parquet]."
        ) from exc

    schema = pa.schema(
        [
            ("project_id", pa.int64()),
            ("project_url", pa.string()),
            ("snapshot_id", pa.int64()),
            ("commit", pa.string()),
            ("path", pa.string()),
            ("content_id", pa.int64()),
            ("time", pa.int64()),
            ("branches", pa.list_(pa.string())),
        ]
    )
    rows = snapshot_rows(iter_project_records(Path(output_root) / "projects"))
    table = pa.Table.from_pylist(rows, schema=schema)
    target = Path(out_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    pq.write_table(table, str(target))
    log.info("Exported %d snapshot rows to %s", table.num_rows, target)
    return table.num_rows
