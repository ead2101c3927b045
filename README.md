# cascade_engine

An event processing engine in which events trigger rules, and rules may add
further events. Every event cascade is watched by a tree of monitors that
tracks priorities, errors and the moment the whole cascade has finished.
Rules run on a pool of worker threads.

## Concepts

- **Event** (`cascade_engine.event.Event`) – a name, a kind in dot notation
  given as a list (`["core", "main", "event1"]`) and an optional state
  dictionary.
- **Rule** (`cascade_engine.rule.Rule`) – matches events on their kind
  (wildcards such as `core.main.*` are allowed), on the scope of the cascade
  and, optionally, on the event state (`None` matches on the key only;
  compiled regular expressions match on the value). Rules have a priority
  (0 is the highest) and may suppress other rules by name. `copy_as` makes a
  shallow copy under a new name.
- **RuleIndex** (`cascade_engine.rule.RuleIndex`) – the tree of kind, state
  and match-all indexes used to find matching rules; `str()` of an index
  shows its layout.
- **RuleScope** (`cascade_engine.util.RuleScope`) – allows or disallows scope
  paths such as `data.read`; the deepest definition along a path wins, and
  the empty path sets the default.
- **Processor** (`cascade_engine.processor.Processor`) – holds the rules and
  runs matching, in-scope, unsuppressed rules on its thread pool in priority
  order.
- **RootMonitor / ChildMonitor** (`cascade_engine.monitor`) – follow an event
  cascade, report the highest active priority and collect its errors as
  `TaskError` objects (`cascade_engine.taskqueue.TaskError`).

## Example

```python
from cascade_engine.event import Event
from cascade_engine.processor import Processor
from cascade_engine.rule import Rule


def on_event(processor, monitor, event, tid):
    print("handling", event)


processor = Processor(2)
processor.add_rule(
    Rule(
        name="PrintRule",
        desc="Print every core event",
        kind_match=["core.*"],
        scope_match=[],
        state_match=None,
        priority=0,
        suppression_list=[],
        action=on_event,
    )
)

processor.start()
monitor = processor.add_event_and_wait(
    Event("MyEvent", ["core", "example"], {"value": 42}), None
)
processor.finish()

print(monitor.all_errors())
```

A rule action receives the processor, the monitor of the event, the event and
the id of the worker thread. To add a follow-up event to the same cascade, an
action calls `processor.add_event(new_event, monitor.new_child_monitor(priority))`.

`add_event` returns the monitor of the event, or `None` if no rule is
triggered by the event's kind (a given monitor is then finished straight
away). `add_event_and_wait` does the same and blocks until the whole cascade
has finished.

Rules can only be added, and the processor reset, while it is stopped;
events can only be added while it is running. Otherwise
`cascade_engine.util.EngineError` is raised. `status()` returns a
`cascade_engine.pool.Status` (`Running`, `Stopping` or `Stopped`).

## Errors

An exception raised by a rule action is recorded for its rule. All errors of
one event are gathered into a `TaskError`, stored on the event's monitor and
returned, ordered by monitor id, from `RootMonitor.all_errors()`.

- `Processor.set_root_monitor_error_observer(observer)` calls `observer` with
  the root monitor each time a task of its cascade ends with errors.
- `Processor.set_fail_on_first_error_in_trigger_sequence(True)` stops running
  the rules for an event after the first failure; events already added by
  the failing rule are still processed.
- `RootMonitor.set_finish_handler(handler)` calls `handler` with the
  processor once the cascade has finished.

## Building blocks

The lower layers can be used on their own:

- `cascade_engine.pubsub.EventPump` – observers keyed by event name and event
  source (compared by identity). An empty event name or a source of `None`
  act as wildcards.
- `cascade_engine.pool.ThreadPool` – a worker pool with a pluggable task
  queue (`DefaultTaskQueue` is FIFO). Tasks provide `run(tid)` and
  `handle_error(error)`. The pool offers `set_worker_count`, `wait_all`,
  `join_all`, `state` and the `too_many_threshold` / `too_many_callback` and
  `too_few_threshold` / `too_few_callback` load callbacks.
- `cascade_engine.taskqueue.TaskQueue` – keeps one priority queue per
  cascade and pops from a randomly picked cascade.
- `cascade_engine.debug.EventTracer` – prints what happens to events whose
  kind and state match a registered pattern. The engine records to the
  shared `cascade_engine.debug.EVENT_TRACER`; call `monitor_event(kind,
  state)` on it to start tracing and `reset()` to stop.

`cascade_engine.processor.reset_ids()` restarts the processor, rule index and
monitor id counters, which makes ids in string output predictable.

## What it does not do

The package is a library only. It has no command-line program and no rule
language: rules are `Rule` objects whose actions are Python callables, built
and loaded by the calling code. Nothing is persisted; rules, monitors and
queued tasks live in memory.

## Tests

The test suite uses pytest, available through the `test` extra.