"""Tasks created by the processor and the queue which schedules them."""

from __future__ import annotations

import heapq
import itertools
import random
import threading
from typing import Any, Dict, List, Optional, Tuple

from .debug import EVENT_TRACER
from .event import Event
from .monitor import Monitor, RootMonitor
from .pubsub import EventPump
from .util import MESSAGE_ROOT_MONITOR_FINISHED, EngineError


class TaskError(EngineError):
    """All rule errors which occurred while processing one event."""

    def __init__(self, error_map: Dict[str, Any], event: Event, monitor: Monitor) -> None:
        super().__init__()
        self.error_map = error_map
        self.event = event
        self.monitor = monitor

    def __str__(self) -> str:
        names = sorted(self.error_map)
        plural = "s" if len(names) > 1 else ""
        path = self.monitor.event_path_string()
        lines = [f"{path} -> {name} : {self.error_map[name]}" for name in names]
        return f"Taskerror{plural}:\n" + "\n".join(lines)


class Task:
    """Processing of one event under a monitor."""

    def __init__(self, processor: Any, monitor: Monitor, event: Event) -> None:
        self.processor = processor
        self.monitor = monitor
        self.event = event

    def run(self, tid: int) -> None:
        """Process the event; raise TaskError if any rule failed."""
        EVENT_TRACER.record(self.event, "Task.run", "Running task")

        errors = self.processor.process_event(tid, self.event, self.monitor)

        if errors:
            # The monitor finishes only once the errors have been handled
            EVENT_TRACER.record(self.event, "Task.run", f"Task had errors:{errors}")
            raise TaskError(errors, self.event, self.monitor)

        self.monitor.finish()

    def handle_error(self, error: Exception) -> None:
        """Record the errors on the monitor, finish it and notify the processor."""
        if not isinstance(error, TaskError):
            raise error
        self.monitor.set_errors(error)
        self.monitor.finish()
        self.processor._notify_root_monitor_errors(self.monitor.root_monitor)

    def __str__(self) -> str:
        return f"Task: {self.processor} {self.monitor} {self.event}"


class _PriorityQueue:
    """Lowest priority value first; first in, first out among equals."""

    def __init__(self) -> None:
        self._heap: List[Tuple[int, int, Any]] = []
        self._seq = itertools.count()

    def push(self, item: Any, priority: int) -> None:
        heapq.heappush(self._heap, (priority, next(self._seq), item))

    def pop(self) -> Any:
        return heapq.heappop(self._heap)[2] if self._heap else None

    def size(self) -> int:
        return len(self._heap)

    def __str__(self) -> str:
        items = "".join(f"{item} ({priority}) " for priority, _, item in sorted(self._heap))
        return f"[ {items}]"

    __repr__ = __str__


class TaskQueue:
    """Task queue with one priority queue per event cascade."""

    def __init__(self, message_queue: EventPump) -> None:
        self._lock = threading.Lock()
        self._queues: Dict[int, _PriorityQueue] = {}
        self.message_queue = message_queue

    @property
    def queues(self) -> Dict[int, _PriorityQueue]:
        """Snapshot of the queues by root monitor id."""
        with self._lock:
            return dict(self._queues)

    def clear(self) -> None:
        """Remove all pending tasks."""
        with self._lock:
            self._queues = {}

    def pop(self) -> Optional[Task]:
        """Next task from a randomly picked cascade, or None."""
        with self._lock:
            remaining = random.randrange(len(self._queues)) if self._queues else 0
            chosen: Optional[_PriorityQueue] = None
            empty: List[int] = []

            for root_id, queue in self._queues.items():
                if queue.size() > 0:
                    # Pick the last non-empty queue if the counter never runs out
                    remaining -= 1
                    chosen = queue
                    if remaining <= 0:
                        break
                else:
                    empty.append(root_id)

            for root_id in empty:
                del self._queues[root_id]

            return chosen.pop() if chosen is not None else None

    def push(self, task: Task) -> None:
        """Add a task to the queue of its cascade."""
        with self._lock:
            root = task.monitor.root_monitor
            queue = self._queues.get(root.id)

            if queue is None:
                queue = _PriorityQueue()
                self._queues[root.id] = queue
                self.message_queue.add_observer(
                    MESSAGE_ROOT_MONITOR_FINISHED, root, self._on_root_finished
                )

            queue.push(task, task.monitor.priority)

    def _on_root_finished(self, event: str, source: RootMonitor) -> None:
        with self._lock:
            queue = self._queues.get(source.id)
            # Safeguard that no tasks are ever left over
            if queue is not None and queue.size() != 0:
                raise EngineError("Finished monitor left events behind")
            self.message_queue.remove_observers(event, source)

    def size(self) -> int:
        """Number of pending tasks over all cascades."""
        with self._lock:
            return sum(queue.size() for queue in self._queues.values())