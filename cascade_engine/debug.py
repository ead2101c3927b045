"""Low level event tracing for debugging."""

from __future__ import annotations

import re
import sys
import threading
from typing import Any, Dict, List, Optional, TextIO

from .event import Event, _convert_to_string, _format_value


def _search(pattern: str, text: str) -> bool:
    try:
        return re.search(pattern, text) is not None
    except re.error:
        return False


def state_match(template: Dict[Any, Any], state: Optional[Dict[Any, Any]]) -> bool:
    """Check if a template matches an event state.

    Every template key must be present; a None value matches on the key only,
    other values must be equal or match as a regular expression.
    """
    state = state or {}
    for key, value in template.items():
        if key not in state:
            return False
        if value is not None:
            actual = state[key]
            if value != actual and not _search(_format_value(value), _format_value(actual)):
                return False
    return True


class EventTracer:
    """Writes a trace of the actions on monitored events."""

    def __init__(self, out: Optional[TextIO] = None) -> None:
        self.out = out
        self._lock = threading.Lock()
        self._kinds: List[str] = []
        self._states: List[Optional[Dict[Any, Any]]] = []

    def monitor_event(self, kind: str, state: Optional[Dict[Any, Any]]) -> None:
        """Monitor events of a kind (or kind pattern) with the given state values."""
        with self._lock:
            self._kinds.append(kind)
            self._states.append(state)

    def reset(self) -> None:
        """Remove all monitoring requests."""
        with self._lock:
            self._kinds = []
            self._states = []

    def record(self, event: Event, where: str, *args: Any) -> None:
        """Record an action on an event if the event is monitored."""
        with self._lock:
            if not self._kinds:
                return

            out = self.out if self.out is not None else sys.stdout
            event_kind = ".".join(event.kind)

            for kind, template in zip(self._kinds, self._states):
                if event_kind != kind and not _search(kind, event_kind):
                    continue
                if template is not None and not state_match(template, event.state):
                    continue

                print(f"{kind} {where}", file=out)
                for item in args:
                    print(f"    {_convert_to_string(item)}", file=out)
                print(f"    {event}", file=out)


EVENT_TRACER = EventTracer()