"""Monitors which follow event cascades through the engine."""

from __future__ import annotations

import heapq
import threading
from typing import Any, Callable, Dict, List, Optional

from .event import Event
from .pubsub import EventPump
from .util import MESSAGE_ROOT_MONITOR_FINISHED, EngineError, IdCounter, RuleScope

MONITOR_IDS = IdCounter(1)


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise EngineError(message)


def _flag(value: bool) -> str:
    return "true" if value else "false"


class Monitor:
    """Observes one step of an event cascade; cascades form trees of monitors."""

    def __init__(
        self,
        priority: int = 0,
        parent: Optional["Monitor"] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.id: int = MONITOR_IDS.next()
        self.parent = parent
        self.context = context
        self.err: Any = None
        self.priority = priority
        self.root_monitor: Optional["RootMonitor"] = (
            parent.root_monitor if parent is not None else None
        )
        self.event: Optional[Event] = None
        self.activated = False
        self.finished = False
        self._counted = False

    def new_child_monitor(self, priority: int) -> "ChildMonitor":
        """Create a child monitor sharing this monitor's context."""
        child = ChildMonitor(priority, self, self.context)
        self.root_monitor._descendant_created(child)
        return child

    def scope(self) -> RuleScope:
        """The rule scope of the cascade."""
        return self.root_monitor.rule_scope

    def activate(self, event: Event) -> None:
        """Activate this monitor with an event."""
        _check(not self.finished, "Cannot activate a finished monitor")
        _check(not self.activated, "Cannot activate an active monitor")
        _check(event is not None, "Monitor can only be activated with an event")

        self.event = event
        self.root_monitor._descendant_activated(self.priority)
        self._counted = True
        self.activated = True

    def skip(self, event: Optional[Event]) -> None:
        """Finish this monitor without activating it."""
        _check(not self.finished, "Cannot skip a finished monitor")
        _check(not self.activated, "Cannot skip an active monitor")

        self.event = event
        self.activated = True
        self.finish()

    def finish(self) -> None:
        """Finish this monitor."""
        _check(self.activated, "Cannot finish a not active monitor")
        _check(not self.finished, "Cannot finish a finished monitor")

        self.finished = True
        self.root_monitor._descendant_finished(self)

    def errors(self) -> Any:
        """The errors recorded for this monitor; it must have finished."""
        _check(self.finished, "Cannot get errors on an unfinished monitor")
        return self.err

    def set_errors(self, error: Any) -> None:
        """Record errors for this monitor."""
        self.err = error
        self.root_monitor._descendant_failed(self)

    def event_path(self) -> List[Optional[Event]]:
        """The chain of events, from the root, which led to this monitor."""
        _check(self.finished, "Cannot get event path on an unfinished monitor")

        path = []
        monitor: Optional[Monitor] = self
        while monitor is not None:
            path.append(monitor.event)
            monitor = monitor.parent
        path.reverse()
        return path

    def event_path_string(self) -> str:
        """The event path as names joined by arrows."""
        return " -> ".join(event.name for event in self.event_path())

    def __str__(self) -> str:
        parent = str(self.parent) if self.parent is not None else "<nil>"
        return (
            f"Monitor {self.id} (parent: {parent} priority: {self.priority} "
            f"activated: {_flag(self.activated)} finished: {_flag(self.finished)})"
        )


class ChildMonitor(Monitor):
    """A monitor which descends from a root monitor."""


class RootMonitor(Monitor):
    """The monitor at the beginning of an event cascade."""

    def __init__(
        self,
        context: Optional[Dict[str, Any]],
        scope: RuleScope,
        message_queue: EventPump,
    ) -> None:
        super().__init__(0, None, context)
        self.root_monitor = self
        self.rule_scope = scope
        self.message_queue = message_queue
        self.finish_handler: Optional[Callable[[Any], Any]] = None

        self._lock = threading.Lock()
        self._incomplete: Dict[int, int] = {}
        self._priorities: List[int] = []
        self._unfinished = 1
        self._errors: Dict[int, Monitor] = {}

    def set_finish_handler(self, handler: Optional[Callable[[Any], Any]]) -> None:
        """Set a handler called with the processor once the cascade has finished."""
        self.finish_handler = handler

    def highest_priority(self) -> int:
        """The highest priority still active in the cascade, or -1."""
        with self._lock:
            return self._priorities[0] if self._priorities else -1

    def all_errors(self) -> List[Any]:
        """All errors of the cascade, ordered by monitor id."""
        with self._lock:
            return [self._errors[mid].errors() for mid in sorted(self._errors)]

    def _descendant_created(self, monitor: Monitor) -> None:
        with self._lock:
            self._unfinished += 1

    def _descendant_activated(self, priority: int) -> None:
        with self._lock:
            if priority not in self._incomplete:
                self._incomplete[priority] = 0
                heapq.heappush(self._priorities, priority)
            self._incomplete[priority] += 1

    def _descendant_failed(self, monitor: Monitor) -> None:
        with self._lock:
            self._errors[monitor.id] = monitor

    def _descendant_finished(self, monitor: Monitor) -> None:
        with self._lock:
            self._unfinished -= 1
            done = self._unfinished == 0

            if monitor._counted:
                priority = monitor.priority
                self._incomplete[priority] -= 1
                if self._incomplete[priority] == 0:
                    self._priorities.remove(priority)
                    heapq.heapify(self._priorities)
                    del self._incomplete[priority]

        if done:
            self.message_queue.post_event(MESSAGE_ROOT_MONITOR_FINISHED, self)