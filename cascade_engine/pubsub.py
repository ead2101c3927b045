"""A small publish/subscribe event pump based on the observer pattern."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

EventCallback = Callable[[str, Any], None]

_SourceKey = Optional[int]


def _source_key(source: Any) -> _SourceKey:
    """Observed sources are compared by identity; None is the wildcard."""
    return None if source is None else id(source)


class EventPump:
    """Observers subscribe to events from sources; sources post events."""

    def __init__(self) -> None:
        # event name -> source key -> (source, callbacks)
        self._observers: Dict[str, Dict[_SourceKey, Tuple[Any, List[EventCallback]]]] = {}
        self._lock = threading.Lock()

    def add_observer(self, event: str, event_source: Any, callback: Optional[EventCallback]) -> None:
        """Subscribe a callback to an event from a source.

        An empty event name subscribes to all events of the source; a source of
        None subscribes to the event from all sources. A missing callback is ignored.
        """
        if callback is None:
            return

        with self._lock:
            sources = self._observers.setdefault(event, {})
            key = _source_key(event_source)
            if key in sources:
                sources[key][1].append(callback)
            else:
                sources[key] = (event_source, [callback])

    def post_event(self, event: str, event_source: Any) -> None:
        """Post an event from a given source to all matching observers."""
        if not event or event_source is None:
            raise ValueError("Posting an event requires the event and its source")

        self._dispatch(event, event_source)
        self._dispatch("", event_source)

    def _dispatch(self, event: str, event_source: Any) -> None:
        with self._lock:
            sources = self._observers.get(event)
            if sources is None:
                return
            # Snapshot so callbacks may change the observers freely
            snapshot = [(key, list(callbacks)) for key, (_, callbacks) in sources.items()]

        source_key = _source_key(event_source)
        for key, callbacks in snapshot:
            if key is None or key == source_key:
                for callback in callbacks:
                    callback(event, event_source)

    def remove_observers(self, event: str, event_source: Any) -> None:
        """Remove observers.

        An empty event name removes the source's observers from all events; a
        source of None drops all observers of the event; both together clear
        everything.
        """
        with self._lock:
            if not event and event_source is None:
                self._observers = {}
            elif event_source is None:
                self._observers.pop(event, None)
            elif not event:
                key = _source_key(event_source)
                for sources in self._observers.values():
                    sources.pop(key, None)
            else:
                sources = self._observers.get(event)
                if sources is not None:
                    sources.pop(_source_key(event_source), None)