"""The event processor which coordinates the thread pool and the rule index.

Event cycle: process -> triggering -> matching -> fire rule.
"""

from __future__ import annotations

import sys
import threading
from typing import Any, Callable, Dict, List, Optional

from .debug import EVENT_TRACER
from .event import Event
from .monitor import MONITOR_IDS, Monitor, RootMonitor
from .pool import Status, ThreadPool
from .pubsub import EventPump
from .rule import Rule, RuleIndex
from .rule_state import RULE_INDEX_IDS
from .taskqueue import Task, TaskQueue
from .util import (
    MESSAGE_ROOT_MONITOR_FINISHED,
    EngineError,
    IdCounter,
    RuleScope,
    sort_rules,
)

PROCESSOR_IDS = IdCounter(1)

_TOO_MANY_TASKS = 10


def _warn_queue_filling() -> None:
    sys.stderr.write("Warning: The thread pool queue is filling up ...")


class Processor:
    """Main object of the event engine.

    Rules can only be added while the processor is stopped; events can only
    be added while it is running.
    """

    def __init__(self, worker_count: int) -> None:
        self.id: int = PROCESSOR_IDS.next()
        self.worker_count = worker_count
        self.message_queue = EventPump()

        self.thread_pool = ThreadPool(TaskQueue(self.message_queue))
        self.thread_pool.too_many_threshold = _TOO_MANY_TASKS
        self.thread_pool.too_many_callback = _warn_queue_filling

        self.fail_on_first_error = False
        self._rule_index = RuleIndex()
        self._triggering_cache: Optional[Dict[str, bool]] = None
        self._triggering_cache_lock = threading.Lock()
        self._rm_error_observer: Optional[Callable[[RootMonitor], Any]] = None

    def _invalidate_triggering_cache(self) -> None:
        with self._triggering_cache_lock:
            self._triggering_cache = None

    def reset(self) -> None:
        """Remove all rules; the processor must be stopped."""
        if self.thread_pool.status() != Status.STOPPED:
            raise EngineError("Cannot reset processor if it has not stopped")

        self._invalidate_triggering_cache()
        self._rule_index = RuleIndex()

    def add_rule(self, rule: Rule) -> None:
        """Add a rule; the processor must be stopped."""
        if self.thread_pool.status() != Status.STOPPED:
            raise EngineError("Cannot add rule if the processor has not stopped")

        self._invalidate_triggering_cache()
        self._rule_index.add_rule(rule)

    def rules(self) -> Dict[str, Rule]:
        """All loaded rules by name."""
        return self._rule_index.rules()

    def start(self) -> None:
        """Start the worker threads."""
        self.thread_pool.set_worker_count(self.worker_count, False)

    def finish(self) -> None:
        """Finish all remaining tasks, then stop the processor."""
        self.thread_pool.join_all()

    def stopped(self) -> bool:
        """True if the processor is stopped."""
        return self.thread_pool.status() == Status.STOPPED

    def status(self) -> Status:
        """Running, Stopping or Stopped."""
        return self.thread_pool.status()

    def new_root_monitor(
        self,
        context: Optional[Dict[str, Any]] = None,
        scope: Optional[RuleScope] = None,
    ) -> RootMonitor:
        """Create a root monitor; without a scope it has global scope."""
        if scope is None:
            scope = RuleScope({"": True})
        return RootMonitor(context, scope, self.message_queue)

    def set_root_monitor_error_observer(
        self, observer: Optional[Callable[[RootMonitor], Any]]
    ) -> None:
        """Observer called when a task of a root monitor's cascade reports errors."""
        self._rm_error_observer = observer

    def set_fail_on_first_error_in_trigger_sequence(self, value: bool) -> None:
        """Stop running the rules for an event at the first failing rule."""
        self.fail_on_first_error = value

    def _notify_root_monitor_errors(self, root_monitor: RootMonitor) -> None:
        if self._rm_error_observer is not None:
            self._rm_error_observer(root_monitor)

    def add_event_and_wait(
        self, event: Event, monitor: Optional[RootMonitor] = None
    ) -> Optional[Monitor]:
        """Add an event and wait until its cascade has finished."""
        done = threading.Event()

        if monitor is None:
            monitor = self.new_root_monitor()

        def on_finished(name: str, source: Any) -> None:
            done.set()
            self.message_queue.remove_observers(name, source)

        self.message_queue.add_observer(MESSAGE_ROOT_MONITOR_FINISHED, monitor, on_finished)

        try:
            result = self.add_event(event, monitor)
        except BaseException:
            self.message_queue.remove_observers(MESSAGE_ROOT_MONITOR_FINISHED, monitor)
            raise

        if result is None:
            # The event was not added
            self.message_queue.remove_observers(MESSAGE_ROOT_MONITOR_FINISHED, monitor)
        else:
            done.wait()

        return result

    def add_event(
        self, event: Event, parent_monitor: Optional[Monitor] = None
    ) -> Optional[Monitor]:
        """Add an event; return its monitor, or None if no rule is triggered."""
        if self.thread_pool.status() in (Status.STOPPED, Status.STOPPING):
            raise EngineError("Cannot add event if the processor is stopping or not running")

        EVENT_TRACER.record(event, "Processor.add_event", "Event added to the processor")

        if not self.is_triggering(event):
            EVENT_TRACER.record(event, "Processor.add_event", "Event was skipped")
            if parent_monitor is not None:
                parent_monitor.skip(event)
            return None

        monitor = parent_monitor if parent_monitor is not None else self.new_root_monitor()

        if isinstance(monitor, RootMonitor):

            def on_finished(name: str, source: RootMonitor) -> None:
                if source.finish_handler is not None:
                    source.finish_handler(self)
                self.message_queue.remove_observers(name, source)

            self.message_queue.add_observer(MESSAGE_ROOT_MONITOR_FINISHED, monitor, on_finished)

        monitor.activate(event)

        EVENT_TRACER.record(event, "Processor.add_event", "Adding task to thread pool")

        self.thread_pool.add_task(Task(self, monitor, event))

        return monitor

    def is_triggering(self, event: Event) -> bool:
        """Check if an event triggers a rule; cached by event name, no state check."""
        with self._triggering_cache_lock:
            if self._triggering_cache is None:
                self._triggering_cache = {}

            result = self._triggering_cache.get(event.name)
            if result is None:
                result = self._rule_index.is_triggering(event)
                self._triggering_cache[event.name] = result

            return result

    def process_event(self, tid: int, event: Event, parent: Monitor) -> Dict[str, Exception]:
        """Run all in-scope, unsuppressed rules matching an event; return their errors."""
        scope = parent.scope()
        candidates = self._rule_index.match(event)

        EVENT_TRACER.record(event, "Processor.process_event", "Processing event")

        triggering = [rule for rule in candidates if scope.is_allowed_all(rule.scope_match)]
        suppressed = {name for rule in triggering for name in (rule.suppression_list or [])}
        executing: List[Rule] = sort_rules(
            rule for rule in triggering if rule.name not in suppressed
        )

        EVENT_TRACER.record(event, "Processor.process_event", "Running rules: ", executing)

        errors: Dict[str, Exception] = {}
        for rule in executing:
            try:
                rule.action(self, parent, event, tid)
            except Exception as exc:  # noqa: BLE001 - collected per rule
                errors[rule.name] = exc
            if self.fail_on_first_error and errors:
                break

        return errors

    def __str__(self) -> str:
        return f"EventProcessor {self.id} (workers:{self.worker_count})"


def reset_ids() -> None:
    """Reset the processor, rule index and monitor id counters."""
    PROCESSOR_IDS.reset()
    RULE_INDEX_IDS.reset()
    MONITOR_IDS.reset()