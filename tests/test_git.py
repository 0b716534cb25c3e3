import json
import os
import shutil
import subprocess

import pytest

from githarvest.core.config import GitConfig, HarvestConfig
from githarvest.core.ingest import Ingestor
from githarvest.core.interfaces import FileInfo, HistoryEntry, VcsClient
from githarvest.vcs.git import GitClient, GitError, parse_file_history

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def _git(cwd, *args):
    subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        env={
            "GIT_AUTHOR_NAME": "Test",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test",
            "GIT_COMMITTER_EMAIL": "test@example.com",
            "HOME": str(cwd),
            "PATH": os.environ.get("PATH", ""),
        },
    )


def _rev(cwd, ref="HEAD"):
    return subprocess.run(
        ["git", "rev-parse", ref], cwd=cwd, check=True, capture_output=True, text=True
    ).stdout.strip()


@pytest.fixture
def origin(tmp_path):
    repo = tmp_path / "origin"
    repo.mkdir()
    _git(repo, "init", "-q")
    (repo / "old.js").write_text("v1\n", encoding="utf-8")
    (repo / "notes.md").write_text("notes\n", encoding="utf-8")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "first")
    _git(repo, "branch", "-M", "main")
    _git(repo, "mv", "old.js", "app.js")
    _git(repo, "commit", "-q", "-m", "rename")
    (repo / "app.js").write_text("v2\n", encoding="utf-8")
    _git(repo, "commit", "-q", "-am", "edit")
    _git(repo, "checkout", "-q", "-b", "dev")
    (repo / "dev.js").write_text("dev\n", encoding="utf-8")
    _git(repo, "add", "dev.js")
    _git(repo, "commit", "-q", "-m", "dev work")
    _git(repo, "checkout", "-q", "main")
    return repo


def test_parse_file_history_newest_first():
    out = "\x1eabc 200\n\napp.js\n\x1edef 100\n\nold.js\n"
    assert parse_file_history(out) == [
        HistoryEntry("abc", "app.js", 200),
        HistoryEntry("def", "old.js", 100),
    ]


def test_parse_file_history_ignores_incomplete_blocks():
    assert parse_file_history("\x1eabc 200\n\x1e\n") == []


def test_git_client_satisfies_protocol():
    assert isinstance(GitClient(), VcsClient)


@needs_git
def test_clone_branches_and_files(origin, tmp_path):
    client = GitClient()
    dest = tmp_path / "clone"
    assert client.clone(str(origin), dest)

    assert client.list_branches(dest) == {"main", "dev"}
    assert client.current_branch(dest) == "main"
    assert sorted(f.filename for f in client.list_files(dest)) == ["app.js", "notes.md"]

    assert client.checkout(dest, "dev")
    assert client.current_branch(dest) == "dev"
    assert "dev.js" in {f.filename for f in client.list_files(dest)}
    assert not client.checkout(dest, "no-such-branch")


@needs_git
def test_file_history_follows_renames_oldest_first(origin, tmp_path):
    client = GitClient()
    dest = tmp_path / "clone"
    assert client.clone(str(origin), dest)

    history = client.file_history(dest, FileInfo("app.js"))
    assert [h.filename for h in history] == ["old.js", "app.js", "app.js"]
    assert history[-1].commit == _rev(origin, "main")
    assert all(h.date > 0 for h in history)
    assert client.file_content_at(dest, history[0]) == b"v1\n"
    assert client.file_content_at(dest, history[-1]) == b"v2\n"


@needs_git
def test_missing_revision_content_is_none(origin, tmp_path):
    client = GitClient()
    dest = tmp_path / "clone"
    assert client.clone(str(origin), dest)
    first = client.file_history(dest, FileInfo("app.js"))[0]
    assert client.file_content_at(dest, HistoryEntry(first.commit, "app.js")) is None


@needs_git
def test_clone_failure_returns_false(tmp_path):
    assert GitClient().clone(str(tmp_path / "does-not-exist"), tmp_path / "clone") is False


@needs_git
def test_queries_outside_a_repository_raise(tmp_path):
    with pytest.raises(GitError):
        GitClient().list_files(tmp_path)


def test_missing_executable_raises_git_error(tmp_path):
    client = GitClient(GitConfig(executable=str(tmp_path / "no-git-here")))
    with pytest.raises(GitError):
        client.current_branch(tmp_path)
    assert client.clone("https://example.com/x.git", tmp_path / "x") is False


@needs_git
def test_harvest_local_repository_end_to_end(origin, tmp_path):
    cfg = HarvestConfig()
    cfg.output.root = tmp_path / "out"
    feed = tmp_path / "feed.csv"
    feed.write_text(f"{origin}\n", encoding="utf-8")

    summary = Ingestor(cfg).harvest(feed, workers=1)

    record = json.loads((tmp_path / "out" / "projects" / "0" / "0.json").read_text(encoding="utf-8"))
    assert record["status"] == "ok"
    assert sorted(s["path"] for s in record["snapshots"]) == ["app.js", "app.js", "dev.js", "old.js"]
    assert set(record["branches"]) == {"main", "dev"}
    assert set(record["branches"]["main"]) < set(record["branches"]["dev"])
    assert summary["counters"]["contents"] == 3
    assert summary["counters"]["projects_ok"] == 1


@needs_git
def test_empty_repository_is_mined_as_zero_files(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    _git(empty, "init", "-q")
    client = GitClient()
    dest = tmp_path / "clone"
    assert client.clone(str(empty), dest)
    assert client.current_branch(dest)
    assert client.list_files(dest) == []

    cfg = HarvestConfig()
    cfg.output.root = tmp_path / "out"
    feed = tmp_path / "feed.csv"
    feed.write_text(f"{empty}\n", encoding="utf-8")

    summary = Ingestor(cfg).harvest(feed, workers=1)

    record = json.loads((tmp_path / "out" / "projects" / "0" / "0.json").read_text(encoding="utf-8"))
    assert record["status"] == "ok"
    assert record["snapshots"] == []
    assert summary["counters"]["projects_ok"] == 1
    assert summary["failed_projects"] == []
