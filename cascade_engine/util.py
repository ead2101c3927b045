"""Shared constants, id counters, rule scopes and rule sorting."""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional

RULE_KIND_SEPARATOR = "."
RULE_KIND_WILDCARD = "*"

MESSAGE_ROOT_MONITOR_FINISHED = "MessageRootMonitorFinished"

_ALLOW_FLAG = "."


class EngineError(Exception):
    """Raised when the engine is used in a way it does not allow."""


class IdCounter:
    """Thread safe counter handing out unique ids."""

    def __init__(self, start: int = 1) -> None:
        self._start = start
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the next id."""
        with self._lock:
            value = self._value
            self._value += 1
            return value

    def reset(self) -> None:
        """Start counting again from the initial value."""
        with self._lock:
            self._value = self._start


class RuleScope:
    """Allow or disallow scope paths in dot notation (e.g. core.data.read)."""

    def __init__(self, allows: Optional[Dict[str, bool]] = None) -> None:
        self._defs: Dict[str, Any] = {}
        self.add_all(allows)

    def is_allowed_all(self, scope_paths: Iterable[str]) -> bool:
        """Check that every given scope path is allowed."""
        return all(self.is_allowed(path) for path in scope_paths)

    def is_allowed(self, scope_path: str) -> bool:
        """Check if a scope path is allowed; the deepest definition wins."""
        defs = self._defs
        allowed = defs.get(_ALLOW_FLAG, False)

        for step in scope_path.split("."):
            if step not in defs:
                break
            defs = defs[step]
            allowed = defs.get(_ALLOW_FLAG, allowed)

        return allowed

    def add_all(self, allows: Optional[Dict[str, bool]]) -> None:
        """Add all given definitions."""
        for scope_path, allow in (allows or {}).items():
            self.add(scope_path, allow)

    def add(self, scope_path: str, allow: bool) -> None:
        """Add a definition; the empty path defines the global default."""
        defs = self._defs
        if scope_path:
            for step in scope_path.split("."):
                defs = defs.setdefault(step, {})
        defs[_ALLOW_FLAG] = allow


def sort_rules(rules: Iterable[Any]) -> List[Any]:
    """Return the rules ordered by priority (0 is the highest)."""
    return sorted(rules, key=lambda rule: rule.priority)