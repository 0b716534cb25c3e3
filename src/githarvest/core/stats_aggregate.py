# stats_aggregate.py
# SPDX-License-Identifier: MIT
"""
Aggregation helpers for run summaries.

Given the summaries written by several runs (or several machines sharing a
feed), produce one merged view: counters are summed, failed-project lists
are concatenated, and the time span covers all runs.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

__all__ = ["merge_run_stats", "load_run_summaries"]


def _earliest(values: Iterable[Any]) -> str | None:
    present = [str(v) for v in values if v]
    return min(present) if present else None


def _latest(values: Iterable[Any]) -> str | None:
    present = [str(v) for v in values if v]
    return max(present) if present else None


def merge_run_stats(summaries: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Merge a sequence of run summaries as written by ``Ingestor.finish``.

    ``contents`` is the size of the content store, not a per-run tally, so
    the merged value is the largest one seen rather than a sum.
    """
    counters: dict[str, int] = {}
    failed: list[dict[str, Any]] = []
    contents = 0
    for data in summaries:
        for key, value in (data.get("counters") or {}).items():
            if key == "contents":
                contents = max(contents, int(value))
                continue
            counters[key] = counters.get(key, 0) + int(value)
        for item in data.get("failed_projects") or []:
            if isinstance(item, Mapping):
                failed.append(dict(item))
    if summaries:
        counters["contents"] = contents
    return {
        "runs": len(summaries),
        "started_at": _earliest(s.get("started_at") for s in summaries),
        "finished_at": _latest(s.get("finished_at") for s in summaries),
        "counters": counters,
        "failed_projects": failed,
    }


def load_run_summaries(paths: Iterable[str | Path]) -> list[dict[str, Any]]:
    """Read run-summary JSON files.

    Raises:
        ValueError: If a file does not hold a JSON object.
    """
    out: list[dict[str, Any]] = []
    for path in paths:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"{path}: expected a JSON object, got {type(payload).__name__}")
        out.append(payload)
    return out
