# git.py
# SPDX-License-Identifier: MIT
"""
Git command-line implementation of :class:`~githarvest.core.interfaces.VcsClient`.

Every call runs ``git`` in a subprocess with captured output and a bounded
timeout, so a hung clone or checkout fails its project instead of stalling
the worker forever. Cloned content is only ever read; nothing from the
repository is executed.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

from ..core.config import GitConfig
from ..core.interfaces import FileInfo, HistoryEntry
from ..core.log import get_logger

log = get_logger(__name__)

__all__ = ["GitError", "GitClient", "parse_file_history"]

# Record separator git emits for %x1e; starts each commit header in `git log` output.
_RECORD_MARK = "\x1e"


class GitError(RuntimeError):
    """Raised when a git command fails or times out."""

    def __init__(self, cmd: Sequence[str], message: str) -> None:
        super().__init__(f"{' '.join(cmd)}: {message}")
        self.cmd = list(cmd)


def _git_environment() -> dict[str, str]:
    env = os.environ.copy()
    # Private or vanished repositories must fail, not block on a prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "echo")
    return env


def parse_file_history(output: str) -> list[HistoryEntry]:
    """Parse ``git log --follow --name-only`` output, newest first.

    The expected format is ``<mark><hash> <unix time>`` headers each followed
    by the file's name in that commit.
    """
    entries: list[HistoryEntry] = []
    for block in output.split(_RECORD_MARK):
        lines = [line for line in block.splitlines() if line.strip()]
        if not lines:
            continue
        header = lines[0].split()
        if len(header) < 2 or len(lines) < 2:
            continue
        try:
            date = int(header[1])
        except ValueError:
            date = 0
        entries.append(HistoryEntry(commit=header[0], filename=lines[-1].strip(), date=date))
    return entries


class GitClient:
    """Thin wrapper around the ``git`` executable.

    Args:
        config (GitConfig | None): Executable and timeouts. Defaults to
            :class:`GitConfig` defaults.
    """

    def __init__(self, config: GitConfig | None = None) -> None:
        self.config = config or GitConfig()

    def _run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        check: bool = True,
        text: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = [self.config.executable, *args]
        if timeout is None:
            timeout = self.config.timeout
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=text,
                timeout=timeout,
                env=_git_environment(),
                **({"encoding": "utf-8", "errors": "replace"} if text else {}),
            )
        except subprocess.TimeoutExpired as exc:
            raise GitError(cmd, f"timed out after {timeout} seconds") from exc
        except OSError as exc:
            raise GitError(cmd, str(exc)) from exc
        if check and proc.returncode != 0:
            stderr = proc.stderr if text else proc.stderr.decode("utf-8", "replace")
            raise GitError(cmd, (stderr or "").strip() or f"exit status {proc.returncode}")
        return proc

    def clone(self, url: str, dest: Path) -> bool:
        try:
            self._run(
                ["clone", "--quiet", "--no-single-branch", "--", url, str(dest)],
                timeout=self.config.clone_timeout,
            )
        except GitError as exc:
            log.warning("Clone of %s failed: %s", url, exc)
            return False
        return True

    def list_branches(self, path: Path) -> set[str]:
        proc = self._run(
            ["for-each-ref", "--format=%(refname)", "refs/heads", "refs/remotes"],
            cwd=path,
        )
        branches: set[str] = set()
        for ref in proc.stdout.splitlines():
            ref = ref.strip()
            if ref.startswith("refs/heads/"):
                branches.add(ref[len("refs/heads/"):])
            elif ref.startswith("refs/remotes/"):
                # refs/remotes/<remote>/<branch...>
                parts = ref[len("refs/remotes/"):].split("/", 1)
                if len(parts) == 2 and parts[1] != "HEAD":
                    branches.add(parts[1])
        return branches

    def current_branch(self, path: Path) -> str:
        # symbolic-ref also answers for an unborn branch (empty repository)
        proc = self._run(["symbolic-ref", "--short", "-q", "HEAD"], cwd=path, check=False)
        branch = proc.stdout.strip()
        if proc.returncode == 0 and branch:
            return branch
        # detached HEAD
        proc = self._run(["rev-parse", "--abbrev-ref", "HEAD"], cwd=path)
        return proc.stdout.strip()

    def checkout(self, path: Path, branch: str) -> bool:
        try:
            self._run(["checkout", "--quiet", "--force", branch, "--"], cwd=path)
        except GitError as exc:
            log.debug("Checkout of %s in %s failed: %s", branch, path, exc)
            return False
        return True

    def list_files(self, path: Path) -> list[FileInfo]:
        proc = self._run(["-c", "core.quotePath=false", "ls-files", "-z"], cwd=path)
        return [FileInfo(filename=name) for name in proc.stdout.split("\0") if name]

    def file_history(self, path: Path, file: FileInfo) -> list[HistoryEntry]:
        """Return the file's history oldest first, following renames."""
        proc = self._run(
            [
                "-c", "core.quotePath=false",
                "log", "--follow", "--name-only",
                "--format=%x1e%H %at",
                "--", file.filename,
            ],
            cwd=path,
        )
        entries = parse_file_history(proc.stdout)
        entries.reverse()
        return entries

    def file_content_at(self, path: Path, entry: HistoryEntry) -> bytes | None:
        try:
            proc = self._run(["show", f"{entry.commit}:{entry.filename}"], cwd=path, text=False)
        except GitError as exc:
            log.debug("No content for %s at %s: %s", entry.filename, entry.commit, exc)
            return None
        return proc.stdout
