"""
Bounded background worker for fire-and-forget writes.

Click increments, cursor writes and event recording are submitted here so
the redirect response never waits on them. The queue has a hard backlog
limit: when it is full the task is dropped and counted, never blocking the
caller. Tasks run at most once; a crash before a queued task runs loses it.

`stats()` exposes submitted / completed / failed / dropped / backlog so the
loss rate is observable.
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger(__name__)

_STOP = object()


class BackgroundWorker:
    def __init__(self, threads: int = 4, queue_size: int = 1000, name: str = "linkhop-bg"):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max(1, queue_size))
        self._lock = threading.Lock()
        self._counts = {"submitted": 0, "completed": 0, "failed": 0, "dropped": 0}
        self._closed = False
        self._threads: List[threading.Thread] = []
        for i in range(max(1, threads)):
            t = threading.Thread(target=self._run, name=f"{name}-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def _bump(self, key: str) -> None:
        with self._lock:
            self._counts[key] += 1

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """
        Queue `fn(*args, **kwargs)` without blocking.

        Returns:
            bool: False if the worker is shut down or the backlog is full.
        """
        if self._closed:
            self._bump("dropped")
            log.warning("Background worker closed, dropping %s", getattr(fn, "__name__", fn))
            return False
        try:
            self._queue.put_nowait((fn, args, kwargs))
        except queue.Full:
            self._bump("dropped")
            log.warning("Background backlog full, dropping %s", getattr(fn, "__name__", fn))
            return False
        self._bump("submitted")
        return True

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                fn, args, kwargs = item
                try:
                    fn(*args, **kwargs)
                except Exception:
                    self._bump("failed")
                    log.exception("Background task %s failed", getattr(fn, "__name__", fn))
                else:
                    self._bump("completed")
            finally:
                self._queue.task_done()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued task has run.

        Returns:
            bool: False if `timeout` elapsed first.
        """
        # Same condition Queue.join() waits on, with a deadline.
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Stop accepting work, let the backlog finish, then stop the threads."""
        if self._closed:
            return
        self._closed = True
        if not self.drain(timeout):
            log.warning("Background worker shut down with %d task(s) pending", self._queue.qsize())
        for _ in self._threads:
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                break
        for t in self._threads:
            t.join(timeout)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            snapshot = dict(self._counts)
        snapshot["backlog"] = self._queue.qsize()
        return snapshot
