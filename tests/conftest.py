import threading
from pathlib import Path

import pytest

from githarvest.core.interfaces import FileInfo, HistoryEntry


class FakeVcs:
    """In-memory repositories addressed by URL.

    A repository is ``{branch: {filename: [(commit, body), ...]}}`` with
    history oldest first. A history item may be ``(commit, path, body)`` to
    model a rename; ``body=None`` models a revision that cannot be read.
    """

    def __init__(self):
        self._repos = {}
        self._clones = {}
        self._lock = threading.Lock()
        self.clone_calls = []
        self.content_requests = []

    def add_repo(self, url, branches, *, current="main", fail_checkout=(), fail_clone=False, clone_error=None):
        contents = {}
        for files in branches.values():
            for name, history in files.items():
                for item in history:
                    commit, path, body = item if len(item) == 3 else (item[0], name, item[1])
                    contents[(commit, path)] = body
        self._repos[url] = {
            "branches": branches,
            "current": current,
            "fail_checkout": set(fail_checkout),
            "fail_clone": fail_clone,
            "clone_error": clone_error,
            "contents": contents,
        }

    def _state(self, path):
        with self._lock:
            return self._clones[Path(path)]

    # VcsClient -----------------------------------------------------------
    def clone(self, url, dest):
        with self._lock:
            self.clone_calls.append((url, Path(dest)))
        repo = self._repos.get(url)
        if repo is None or repo["fail_clone"]:
            # leave a partial checkout behind like an interrupted clone would
            Path(dest).mkdir(parents=True, exist_ok=True)
            (Path(dest) / "partial").write_text("x", encoding="utf-8")
            return False
        if repo["clone_error"] is not None:
            raise repo["clone_error"]
        Path(dest).mkdir(parents=True, exist_ok=True)
        (Path(dest) / ".git").mkdir()
        with self._lock:
            self._clones[Path(dest)] = {"url": url, "repo": repo, "branch": repo["current"]}
        return True

    def list_branches(self, path):
        return set(self._state(path)["repo"]["branches"])

    def current_branch(self, path):
        return self._state(path)["branch"]

    def checkout(self, path, branch):
        state = self._state(path)
        if branch in state["repo"]["fail_checkout"] or branch not in state["repo"]["branches"]:
            return False
        state["branch"] = branch
        return True

    def list_files(self, path):
        state = self._state(path)
        return [FileInfo(name) for name in state["repo"]["branches"][state["branch"]]]

    def file_history(self, path, file):
        state = self._state(path)
        history = state["repo"]["branches"][state["branch"]][file.filename]
        entries = []
        for date, item in enumerate(history, start=1):
            commit, name = (item[0], item[1]) if len(item) == 3 else (item[0], file.filename)
            entries.append(HistoryEntry(commit=commit, filename=name, date=date))
        return entries

    def file_content_at(self, path, entry):
        state = self._state(path)
        with self._lock:
            self.content_requests.append((state["url"], entry.commit, entry.filename))
        body = state["repo"]["contents"].get((entry.commit, entry.filename))
        if isinstance(body, str):
            body = body.encode("utf-8")
        return body


@pytest.fixture
def fake_vcs():
    return FakeVcs()
