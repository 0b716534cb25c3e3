# concurrency.py
# SPDX-License-Identifier: MIT
"""Fixed-size worker pool running project tasks from a shared queue.

Workers are plain threads. Each owns one :class:`TaskWorker` built by the
pool's factory and runs one task to completion before taking the next. A
task that raises is logged and reported through ``on_error``; the worker
moves on and the pool keeps running.
"""
from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from .interfaces import TaskWorker
from .log import get_logger

log = get_logger(__name__)

__all__ = ["WorkerPool"]

T = TypeVar("T")

_STOP = object()


class WorkerPool(Generic[T]):
    """Thread pool pulling tasks from one FIFO queue.

    ``schedule`` may be called from any thread, before or after ``spawn``.
    Workers block until ``run`` is called, so tasks can be seeded first and
    dispatched together.

    Args:
        worker_factory (Callable[[], TaskWorker[T]]): Builds the per-thread
            task runner. Called once per spawned thread.
        on_error (Callable[[T, BaseException], None] | None): Invoked on the
            worker thread when a task raises.
        name (str): Thread name prefix.
    """

    def __init__(
        self,
        worker_factory: Callable[[], TaskWorker[T]],
        *,
        on_error: Callable[[T, BaseException], None] | None = None,
        name: str = "harvest-worker",
    ) -> None:
        self._factory = worker_factory
        self._on_error = on_error
        self._name = name
        self._queue: queue.Queue = queue.Queue()
        self._started = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._completed = 0
        self._failures: list[tuple[T, BaseException]] = []
        self._stopped = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def size(self) -> int:
        return len(self._threads)

    @property
    def completed(self) -> int:
        """Number of tasks that ran, including the ones that failed."""
        with self._lock:
            return self._completed

    @property
    def failures(self) -> list[tuple[T, BaseException]]:
        with self._lock:
            return list(self._failures)

    def pending(self) -> int:
        """Approximate number of tasks not yet picked up by a worker."""
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def spawn(self, n: int) -> None:
        """Start ``n`` more worker threads."""
        if n < 1:
            raise ValueError("spawn requires n >= 1")
        if self._stopped:
            raise RuntimeError("Cannot spawn workers on a stopped pool")
        for _ in range(n):
            worker = self._factory()
            index = len(self._threads)
            thread = threading.Thread(
                target=self._worker_loop,
                args=(worker,),
                name=f"{self._name}-{index}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        log.debug("Spawned %d workers (%d total)", n, len(self._threads))

    def schedule(self, task: T) -> None:
        """Add ``task`` to the shared queue."""
        if self._stopped:
            raise RuntimeError("Cannot schedule tasks on a stopped pool")
        self._queue.put(task)

    def run(self) -> None:
        """Let workers start taking tasks."""
        self._started.set()

    def wait(self) -> None:
        """Block until every scheduled task has been processed."""
        if not self._threads and self._queue.unfinished_tasks:
            raise RuntimeError("wait() called with pending tasks but no workers; call spawn() first")
        if not self._started.is_set() and self._queue.unfinished_tasks:
            raise RuntimeError("wait() called with pending tasks before run()")
        self._queue.join()

    def stop(self, *, drain: bool = True) -> None:
        """Shut the workers down and join them.

        With ``drain`` the queued tasks run first; otherwise, or when no
        worker was ever spawned, they are discarded. Calling ``stop`` twice
        is harmless.
        """
        if self._stopped:
            return
        if drain and self._threads:
            self.run()
            self._queue.join()
        else:
            dropped = self._discard_pending()
            if dropped and drain:
                log.warning("Discarded %d queued tasks on stop: no workers to run them", dropped)
            elif dropped:
                log.warning("Discarded %d queued tasks on stop", dropped)
        self._stopped = True
        for _ in self._threads:
            self._queue.put(_STOP)
        # Workers still waiting for run() must wake up to see the sentinel.
        self._started.set()
        for thread in self._threads:
            thread.join()

    def __enter__(self) -> WorkerPool[T]:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop(drain=exc_type is None)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------
    def _discard_pending(self) -> int:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return dropped
            self._queue.task_done()
            dropped += 1

    def _worker_loop(self, worker: TaskWorker[T]) -> None:
        self._started.wait()
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._run_task(worker, task)
            finally:
                self._queue.task_done()

    def _run_task(self, worker: TaskWorker[T], task: T) -> None:
        try:
            worker.run(task)
        except Exception as exc:  # noqa: BLE001
            log.error("Task %s failed: %s", task, exc, exc_info=True)
            with self._lock:
                self._failures.append((task, exc))
            if self._on_error is not None:
                try:
                    self._on_error(task, exc)
                except Exception:  # noqa: BLE001
                    log.exception("Error callback failed for task %s", task)
        finally:
            with self._lock:
                self._completed += 1
