"""
Single-worker build task queue.

Tasks run strictly one at a time on a dedicated worker thread. Every change
to the queue is mirrored to a JSON file so a restarted server picks up where
it left off, starting with the task that was running when it went down.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from perennial.build_server.task import BuildTask

logger = logging.getLogger(__name__)

QUEUE_FILE = Path(".build-server-queue.json")

TaskCallback = Callable[[BuildTask, Optional[BaseException]], None]


# =============================================================================
# Persistence
# =============================================================================


class PersistentQueue:
    """Pending and in-progress tasks, mirrored to a JSON file.

    File format::

        {"queue": [task, ...], "currentTask": task | null}
    """

    def __init__(self, path: Path = QUEUE_FILE):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._pending: list[BuildTask] = []
        self._current: Optional[BuildTask] = None

    def load(self) -> list[BuildTask]:
        """Read the file and return the tasks to resume, in run order."""
        with self._lock:
            if not self.path.exists():
                return []
            try:
                data = json.loads(self.path.read_text())
            except json.JSONDecodeError as e:
                logger.warning("Ignoring unreadable queue file %s: %s", self.path, e)
                return []

            tasks = []
            if data.get("currentTask"):
                tasks.append(BuildTask.from_dict(data["currentTask"]))
            tasks.extend(BuildTask.from_dict(item) for item in data.get("queue", []))
            self._pending = list(tasks)
            self._current = None
            self._save()
            return tasks

    def push(self, task: BuildTask) -> None:
        with self._lock:
            self._pending.append(task)
            self._save()

    def start(self, task: BuildTask) -> None:
        with self._lock:
            self._pending = [t for t in self._pending if t.task_id != task.task_id]
            self._current = task
            self._save()

    def finish(self, task: BuildTask) -> None:
        with self._lock:
            if self._current is not None and self._current.task_id == task.task_id:
                self._current = None
            self._save()

    @property
    def pending(self) -> list[BuildTask]:
        with self._lock:
            return list(self._pending)

    @property
    def current(self) -> Optional[BuildTask]:
        with self._lock:
            return self._current

    def _save(self) -> None:
        data: dict[str, Any] = {
            "queue": [task.to_dict() for task in self._pending],
            "currentTask": self._current.to_dict() if self._current else None,
        }
        self.path.write_text(json.dumps(data, indent=2))


# =============================================================================
# Worker
# =============================================================================


class TaskQueue:
    """Runs submitted tasks one after another on a background thread."""

    def __init__(
        self,
        run_task: Callable[[BuildTask], Any],
        persistence: Optional[PersistentQueue] = None,
        on_done: Optional[TaskCallback] = None,
    ):
        self.run_task = run_task
        self.persistence = persistence
        self.on_done = on_done
        self._queue: "queue.Queue[Optional[BuildTask]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self, resume: bool = True) -> None:
        """Start the worker, first re-queueing persisted tasks."""
        if resume and self.persistence is not None:
            resumed = self.persistence.load()
            if resumed:
                logger.info("Resuming %d queued task(s)", len(resumed))
            for task in resumed:
                self._queue.put(task)

        self._thread = threading.Thread(target=self._worker, name="build-worker", daemon=True)
        self._thread.start()

    def submit(self, task: BuildTask) -> None:
        if self.persistence is not None:
            self.persistence.push(task)
        self._queue.put(task)
        logger.info("Queued %s (%s), %d waiting", task.task_id, task.describe(), self._queue.qsize())

    def join(self) -> None:
        """Block until every submitted task has finished."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def size(self) -> int:
        return self._queue.qsize()

    def _worker(self) -> None:
        while True:
            task = self._queue.get()
            if task is None:
                self._queue.task_done()
                break

            error: Optional[BaseException] = None
            if self.persistence is not None:
                self.persistence.start(task)
            logger.info("Starting task %s: %s", task.task_id, task.describe())
            try:
                self.run_task(task)
            except Exception as e:
                error = e
                logger.error("Task %s failed: %s", task.task_id, e)
            finally:
                if self.persistence is not None:
                    self.persistence.finish(task)

            if self.on_done is not None:
                try:
                    self.on_done(task, error)
                except Exception:
                    logger.exception("Completion callback for %s failed", task.task_id)
            self._queue.task_done()
