import pytest

from githarvest.cli.main import main
from githarvest.core.projects import Project
from githarvest.core.snapshots import BranchSnapshot, FileSnapshot, FileSnapshotIndex
from githarvest.sinks.parquet import export_parquet, snapshot_rows
from githarvest.sinks.records import ProjectRecordWriter, build_project_record


def _write_project(root, pid, snapshots, branches):
    index = FileSnapshotIndex()
    for commit, path, cid in snapshots:
        index.insert(FileSnapshot(commit, path, content_id=cid))
    record = build_project_record(
        Project(f"https://example.com/{pid}.git", pid),
        status="ok",
        index=index,
        branches={name: BranchSnapshot(name, ids) for name, ids in branches.items()},
    )
    ProjectRecordWriter(root / "projects").write(record)
    return record


def test_snapshot_rows_list_branches_per_snapshot(tmp_path):
    record = _write_project(tmp_path, 0, [("c1", "a.js", 0), ("c2", "a.js", 1)], {"main": [1], "dev": [0, 1]})
    rows = snapshot_rows([record])
    assert [(r["snapshot_id"], r["branches"]) for r in rows] == [(0, ["dev"]), (1, ["dev", "main"])]
    assert rows[0]["project_url"] == "https://example.com/0.git"


def test_export_parquet_writes_one_row_per_snapshot(tmp_path):
    pq = pytest.importorskip("pyarrow.parquet")

    _write_project(tmp_path, 0, [("c1", "a.js", 0)], {"main": [0]})
    _write_project(tmp_path, 1, [("d1", "b.js", 0), ("d2", "b.js", 2)], {"main": [1]})

    out = tmp_path / "export" / "snapshots.parquet"
    assert export_parquet(tmp_path, out) == 3

    table = pq.read_table(out)
    assert table.column("project_id").to_pylist() == [0, 1, 1]
    assert table.column("content_id").to_pylist() == [0, 0, 2]
    assert table.column("branches").to_pylist() == [["main"], [], ["main"]]


def test_export_parquet_empty_tree(tmp_path):
    pq = pytest.importorskip("pyarrow.parquet")

    out = tmp_path / "empty.parquet"
    assert export_parquet(tmp_path, out) == 0
    assert pq.read_table(out).num_rows == 0


def test_cli_export_parquet(tmp_path, capsys):
    pytest.importorskip("pyarrow.parquet")

    _write_project(tmp_path, 4, [("c1", "a.js", 0)], {"main": [0]})
    out = tmp_path / "rows.parquet"
    assert main(["--log-level", "WARNING", "export-parquet", str(tmp_path), str(out)]) == 0
    assert out.exists()
