"""Events which travel through the engine."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def _format_value(value: Any) -> str:
    """Plain text form of a value as it appears in engine output."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    return str(value)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            (key if isinstance(key, str) else _format_value(key)): _jsonable(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def _convert_to_string(value: Any) -> str:
    """Strings stay as they are; other values become compact JSON if possible."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(
            _jsonable(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    except (TypeError, ValueError):
        return _format_value(value)


@dataclass(eq=False)
class Event:
    """An event with a name, a kind in dot notation (as a list) and a state."""

    name: str
    kind: List[str]
    state: Optional[Dict[Any, Any]] = None

    def __str__(self) -> str:
        state = self.state if self.state is not None else {}
        return f"Event: {self.name} {'.'.join(self.kind)} {_convert_to_string(state)}"