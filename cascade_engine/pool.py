"""A thread pool which processes tasks from a pluggable task queue."""

from __future__ import annotations

import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol


class Status(str, Enum):
    """States of a thread pool."""

    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"

    def __str__(self) -> str:
        return self.value


class Task(Protocol):
    """A unit of work run by a pool worker."""

    def run(self, tid: int) -> None:
        """Run the task with the unique thread id of the executing worker."""

    def handle_error(self, error: Exception) -> None:
        """Handle an exception raised by run."""


class TaskQueue(Protocol):
    """A queue of tasks for a thread pool."""

    def clear(self) -> None: ...

    def pop(self) -> Optional[Task]: ...

    def push(self, task: Task) -> None: ...

    def size(self) -> int: ...


class DefaultTaskQueue:
    """A simple FIFO task queue."""

    def __init__(self) -> None:
        self._queue: deque = deque()

    def clear(self) -> None:
        """Remove all pending tasks."""
        self._queue = deque()

    def pop(self) -> Optional[Task]:
        """Return the next task or None if the queue is empty."""
        return self._queue.popleft() if self._queue else None

    def push(self, task: Task) -> None:
        """Append a task."""
        self._queue.append(task)

    def size(self) -> int:
        """Number of pending tasks."""
        return len(self._queue)


_POLL_INTERVAL = 0.001
_IDLE_WAIT = 0.05
_UNLIMITED = 2**31 - 1


class _IdleTask:
    """Internal task which parks a worker until new work arrives."""

    def __init__(self, pool: "ThreadPool") -> None:
        self._pool = pool

    def run(self, tid: int) -> None:
        cond = self._pool._new_task_cond
        with cond:
            cond.wait(_IDLE_WAIT)

    def handle_error(self, error: Exception) -> None:
        raise RuntimeError(f"Idle task failed: {error}")


class _Worker:
    def __init__(self, tid: int, pool: "ThreadPool") -> None:
        self.tid = tid
        self.pool = pool
        self.thread = threading.Thread(
            target=self._run, name=f"pool-worker-{tid}", daemon=True
        )

    def _run(self) -> None:
        pool = self.pool
        try:
            while True:
                task = pool._get_task()
                if task is None:
                    break

                is_idle = isinstance(task, _IdleTask)
                if is_idle:
                    with pool._worker_lock:
                        pool._idle_workers[self.tid] = self

                try:
                    task.run(self.tid)
                except Exception as exc:  # noqa: BLE001 - handed to the task
                    task.handle_error(exc)

                if is_idle:
                    with pool._worker_lock:
                        pool._idle_workers.pop(self.tid, None)
        finally:
            with pool._worker_lock:
                pool._workers.pop(self.tid, None)
                pool._idle_workers.pop(self.tid, None)


class ThreadPool:
    """Pool of worker threads which keep idle until tasks are added."""

    def __init__(self, queue: Optional[TaskQueue] = None) -> None:
        self._queue: TaskQueue = queue if queue is not None else DefaultTaskQueue()
        self._queue_lock = threading.Lock()

        self._worker_id_count = 1
        self._worker_id_lock = threading.Lock()

        self._workers: Dict[int, _Worker] = {}
        self._idle_workers: Dict[int, _Worker] = {}
        self._worker_lock = threading.Lock()
        self._worker_kill = 0
        self._new_task_cond = threading.Condition()

        self._regulation_lock = threading.Lock()

        self.too_many_threshold: int = _UNLIMITED
        self.too_many_callback: Optional[Callable[[], Any]] = None
        self._too_many_triggered = False

        self.too_few_threshold: int = 0
        self.too_few_callback: Optional[Callable[[], Any]] = None
        self._too_few_triggered = False

    def state(self) -> Dict[str, Any]:
        """Snapshot of the queue size and the total and idle worker ids."""
        with self._worker_lock:
            return {
                "task_queue_size": self._queue.size(),
                "total_worker_threads": list(self._workers),
                "idle_worker_threads": list(self._idle_workers),
            }

    def _notify_one(self) -> None:
        with self._new_task_cond:
            self._new_task_cond.notify()

    def _notify_all(self) -> None:
        with self._new_task_cond:
            self._new_task_cond.notify_all()

    def add_task(self, task: Task) -> None:
        """Queue a task and wake up a waiting worker."""
        with self._queue_lock:
            self._queue.push(task)
            size = self._queue.size()

            with self._regulation_lock:
                if self._too_few_triggered and self.too_few_threshold < size:
                    self._too_few_triggered = False

                if not self._too_many_triggered and self.too_many_threshold <= size:
                    self._too_many_triggered = True
                    if self.too_many_callback is not None:
                        self.too_many_callback()

        self._notify_one()

    def _get_task(self) -> Optional[Task]:
        """Next task for a worker; None tells the worker to finish."""
        return_idle = True

        with self._worker_lock:
            if self._worker_kill > 0:
                self._worker_kill -= 1
                return None
            if self._worker_kill == -1:
                # Workers should die once no more tasks are available
                return_idle = False

        with self._queue_lock:
            task = self._queue.pop()
            size = self._queue.size()

        if task is not None:
            return task

        with self._regulation_lock:
            if self._too_many_triggered and self.too_many_threshold > size:
                self._too_many_triggered = False

            if not self._too_few_triggered and self.too_few_threshold >= size:
                self._too_few_triggered = True
                if self.too_few_callback is not None:
                    self.too_few_callback()

        return _IdleTask(self) if return_idle else None

    def new_thread_id(self) -> int:
        """Return a thread id unique to this pool."""
        with self._worker_id_lock:
            tid = self._worker_id_count
            self._worker_id_count += 1
            return tid

    def set_worker_count(self, count: int, wait: bool = False) -> None:
        """Set the number of workers; with wait, block until it is reached."""
        with self._worker_lock:
            current = len(self._workers)

        count = max(count, 0)

        if current < count:
            with self._worker_lock:
                self._worker_kill = 0
                while len(self._workers) != count:
                    worker = _Worker(self.new_thread_id(), self)
                    self._workers[worker.tid] = worker
                    worker.thread.start()

        elif current > count:
            with self._worker_lock:
                self._worker_kill = current - count

            self._notify_all()

            if wait:
                while True:
                    with self._worker_lock:
                        current = len(self._workers)
                    if current == count:
                        break
                    time.sleep(_POLL_INTERVAL)
                    self._notify_all()

        # With a positive count wait until at least one worker is idle
        while count > 0:
            with self._worker_lock:
                if self._idle_workers:
                    break
            time.sleep(_POLL_INTERVAL)

    def status(self) -> Status:
        """Current status of the pool."""
        with self._worker_lock:
            workers = len(self._workers)
            kill = self._worker_kill

        if workers > 0:
            return Status.STOPPING if kill == -1 else Status.RUNNING
        return Status.STOPPED

    def worker_count(self) -> int:
        """Current number of workers."""
        with self._worker_lock:
            return len(self._workers)

    def wait_all(self) -> None:
        """Wait until all tasks are done and all workers are idle."""
        self._notify_all()
        time.sleep(_POLL_INTERVAL)

        while True:
            with self._worker_lock, self._queue_lock:
                workers = len(self._workers)
                idle = len(self._idle_workers)
                tasks = self._queue.size()

            if workers == 0 or (workers == idle and tasks == 0):
                break

            time.sleep(_POLL_INTERVAL)
            self._notify_all()

    def join_all(self) -> None:
        """Process all remaining tasks, then stop all workers."""
        with self._worker_lock:
            self._worker_kill = -1

        self._notify_all()

        while True:
            with self._worker_lock, self._queue_lock:
                workers = len(self._workers)
                tasks = self._queue.size()

            if workers == 0 and tasks == 0:
                break

            time.sleep(_POLL_INTERVAL)
            self._notify_all()