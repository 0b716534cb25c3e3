import logging

import pytest

from githarvest.core.content_store import ContentStore
from githarvest.core.projects import Project
from githarvest.core.walker import BranchWalker
from githarvest.sources.patterns import PatternList

URL = "https://example.com/repo.git"


def _walk(fake_vcs, tmp_path, file_filter=None):
    store = ContentStore(tmp_path / "data", index_path=":memory:")
    project = Project(URL, 0, local_path=tmp_path / "clone")
    assert fake_vcs.clone(URL, project.local_path)
    walker = BranchWalker(fake_vcs, file_filter or PatternList.everything(), store)
    branches = walker.walk(project)
    return project, walker, branches, store


def test_file_shared_by_two_branches_is_indexed_once(fake_vcs, tmp_path):
    fake_vcs.add_repo(
        URL,
        {
            "main": {"a.js": [("c0", "a")]},
            "B": {"x.txt": [("c1", "x body")]},
            "C": {"x.txt": [("c1", "x body")], "y.txt": [("c2", "y")]},
        },
    )
    _, walker, branches, store = _walk(fake_vcs, tmp_path)

    shared = walker.index.get(("c1", "x.txt"))
    assert shared is not None
    assert len(walker.index) == 3
    assert branches["B"].snapshot_ids == [shared.id]
    assert shared.id in branches["C"].snapshot_ids
    assert sum(1 for r in fake_vcs.content_requests if r[1:] == ("c1", "x.txt")) == 1
    assert len(store) == 3
    assert walker.stats.branches == 3
    store.close()


def test_current_branch_is_walked_first(fake_vcs, tmp_path):
    fake_vcs.add_repo(
        URL,
        {"dev": {"a.js": [("c2", "dev")]}, "main": {"a.js": [("c1", "main")]}},
        current="main",
    )
    _, walker, branches, store = _walk(fake_vcs, tmp_path)
    assert list(branches) == ["main", "dev"]
    assert walker.index.get(("c1", "a.js")).id == 0
    store.close()


def test_history_is_indexed_oldest_first_and_branch_lists_newest(fake_vcs, tmp_path):
    fake_vcs.add_repo(URL, {"main": {"a.js": [("c1", "v1"), ("c2", "v2"), ("c3", "v1")]}})
    _, walker, branches, store = _walk(fake_vcs, tmp_path)

    assert [(s.commit, s.id, s.content_id) for s in walker.index] == [
        ("c1", 0, 0),
        ("c2", 1, 1),
        ("c3", 2, 0),
    ]
    assert branches["main"].snapshot_ids == [2]
    assert store.stats().reused == 1
    store.close()


def test_unreadable_revision_is_skipped(fake_vcs, tmp_path):
    fake_vcs.add_repo(
        URL,
        {"main": {"a.js": [("c1", None), ("c2", "v2")], "b.js": [("c3", "b1"), ("c4", None)]}},
    )
    _, walker, branches, store = _walk(fake_vcs, tmp_path)

    assert sorted(s.key for s in walker.index) == [("c2", "a.js"), ("c3", "b.js")]
    assert walker.stats.skipped_revisions == 2
    # b.js contributes nothing: its newest revision could not be read
    assert branches["main"].snapshot_ids == [walker.index.get(("c2", "a.js")).id]
    store.close()


def test_denied_file_flags_project_and_adds_nothing(fake_vcs, tmp_path):
    fake_vcs.add_repo(
        URL,
        {
            "main": {
                "app.js": [("c1", "app")],
                "dist/app.min.js": [("c1", "min")],
                "README.md": [("c1", "readme")],
            }
        },
    )
    project, walker, _, store = _walk(fake_vcs, tmp_path, PatternList.javascript())

    assert project.has_denied_files is True
    assert [s.rel_path for s in walker.index] == ["app.js"]
    assert [r[2] for r in fake_vcs.content_requests] == ["app.js"]
    assert walker.stats.files_denied == 1
    assert walker.stats.files_accepted == 1
    store.close()


def test_checkout_failure_skips_only_that_branch(fake_vcs, tmp_path, caplog):
    caplog.set_level(logging.WARNING, logger="githarvest")
    fake_vcs.add_repo(
        URL,
        {
            "main": {"a.js": [("c1", "a")]},
            "broken": {"b.js": [("c2", "b")]},
            "dev": {"c.js": [("c3", "c")]},
        },
        fail_checkout={"broken"},
    )
    _, walker, branches, store = _walk(fake_vcs, tmp_path)

    assert set(branches) == {"main", "dev"}
    assert walker.stats.checkout_failures == 1
    assert ("c2", "b.js") not in walker.index
    assert any("Unable to checkout branch broken" in r.getMessage() for r in caplog.records)
    store.close()


def test_renamed_file_keeps_historic_paths(fake_vcs, tmp_path):
    fake_vcs.add_repo(URL, {"main": {"new.js": [("c1", "old.js", "body"), ("c2", "new.js", "body 2")]}})
    _, walker, _, store = _walk(fake_vcs, tmp_path)
    assert [s.key for s in walker.index] == [("c1", "old.js"), ("c2", "new.js")]
    store.close()


def test_walk_requires_a_clone(fake_vcs, tmp_path):
    store = ContentStore(tmp_path / "data", index_path=":memory:")
    walker = BranchWalker(fake_vcs, PatternList.everything(), store)
    with pytest.raises(ValueError, match="has not been cloned"):
        walker.walk(Project(URL, 1))
    store.close()
