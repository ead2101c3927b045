"""Rules and the kind tree of the rule index."""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .event import Event, _format_value
from .rule_state import (
    RULE_INDEX_IDS,
    TYPE_RULE_INDEX_ALL,
    TYPE_RULE_INDEX_KIND,
    TYPE_RULE_INDEX_STATE,
    RuleIndexAll,
    RuleIndexState,
)
from .util import RULE_KIND_SEPARATOR, RULE_KIND_WILDCARD, EngineError

RuleAction = Callable[[Any, Any, Event, int], None]


def _json_default(value: Any) -> Any:
    if isinstance(value, re.Pattern):
        return {}
    return _format_value(value)


@dataclass(eq=False)
class Rule:
    """A matching rule for event receivers.

    A rule matches on event kinds (dot notation, '*' as wildcard), on the
    scope of the event cascade and optionally on the event state (None values
    match on the key only, compiled patterns match as regular expressions).
    Priority 0 is the highest; a rule may suppress other rules by name.
    """

    name: str
    desc: str = ""
    kind_match: List[str] = field(default_factory=list)
    scope_match: Optional[List[str]] = None
    state_match: Optional[Dict[str, Any]] = None
    priority: int = 0
    suppression_list: List[str] = field(default_factory=list)
    action: Optional[RuleAction] = None

    def copy_as(self, new_name: str) -> "Rule":
        """Return a shallow copy of this rule with a new name."""
        return dataclasses.replace(self, name=new_name)

    def __str__(self) -> str:
        state = json.dumps(
            self.state_match,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_json_default,
        )
        return (
            f"Rule:{self.name} [{self.desc.strip()}] "
            f"(Priority:{self.priority} "
            f"Kind:{_format_value(list(self.kind_match or []))} "
            f"Scope:{_format_value(list(self.scope_match or []))} "
            f"StateMatch:{state} "
            f"Suppress:{_format_value(list(self.suppression_list or []))})"
        )


SubIndex = Union["RuleIndexKind", RuleIndexState, RuleIndexAll]


class RuleIndexKind:
    """Index node which matches one level of the event kind."""

    index_type = TYPE_RULE_INDEX_KIND

    def __init__(self) -> None:
        self.id = RULE_INDEX_IDS.next()
        self.kind_all_match: List[SubIndex] = []
        self.kind_single_match: Dict[str, List[SubIndex]] = {}
        self.count = 0

    def add_rule(self, rule: Rule) -> None:
        """Add a rule for all of its kind matches."""
        if not rule.kind_match:
            raise EngineError(f"Cannot add rule without a kind match: {rule.name}")
        if rule.scope_match is None:
            raise EngineError(f"Cannot add rule without a scope match: {rule.name}")

        for kind_match in rule.kind_match:
            self.add_rule_at_level(rule, kind_match.split(RULE_KIND_SEPARATOR))
            self.count += 1

    def add_rule_at_level(self, rule: Rule, kind_match_level: Sequence[str]) -> None:
        """Add a rule at the level described by the remaining kind parts."""
        if len(kind_match_level) == 1:
            index_type = (
                TYPE_RULE_INDEX_STATE if rule.state_match is not None else TYPE_RULE_INDEX_ALL
            )
        else:
            index_type = TYPE_RULE_INDEX_KIND

        match_item = kind_match_level[0]

        if match_item == RULE_KIND_WILDCARD:
            sub_indexes = self.kind_all_match
        else:
            sub_indexes = self.kind_single_match.setdefault(match_item, [])

        index = next((item for item in sub_indexes if item.index_type == index_type), None)

        if index is None:
            if index_type == TYPE_RULE_INDEX_STATE:
                index = RuleIndexState()
            elif index_type == TYPE_RULE_INDEX_ALL:
                index = RuleIndexAll()
            else:
                index = RuleIndexKind()
            sub_indexes.append(index)

        index.add_rule_at_level(rule, kind_match_level[1:])

    def is_triggering(self, event: Event) -> bool:
        """Check if an event triggers any rule (without state matching)."""
        return self.is_triggering_at_level(event, 0)

    def is_triggering_at_level(self, event: Event, level: int) -> bool:
        """Check if an event triggers a rule at the given level."""
        # The event kind is too general for rules below this level
        if len(event.kind) <= level:
            return False

        level_kind = event.kind[level]
        next_level = level + 1

        if any(index.is_triggering_at_level(event, next_level) for index in self.kind_all_match):
            return True

        return any(
            index.is_triggering_at_level(event, next_level)
            for index in self.kind_single_match.get(level_kind, [])
        )

    def match(self, event: Event) -> List[Rule]:
        """Return all rules which fully match an event, state included."""
        return self.match_at_level(event, 0)

    def match_at_level(self, event: Event, level: int) -> List[Rule]:
        """Return all rules which fully match an event at the given level."""
        if len(event.kind) <= level:
            return []

        level_kind = event.kind[level]
        next_level = level + 1

        result: List[Rule] = []
        for index in self.kind_all_match:
            result.extend(index.match_at_level(event, next_level))
        for index in self.kind_single_match.get(level_kind, []):
            result.extend(index.match_at_level(event, next_level))
        return result

    def string_indent(self, indent: str) -> str:
        """Indented description of this index and all sub indexes."""
        new_indent = indent + "  "
        parts: List[str] = []

        def write_index_list(name: str, indexes: List[SubIndex]) -> None:
            if indexes:
                parts.append(f"{indent}{name} - {self.index_type} ({self.id})\n")
                parts.extend(index.string_indent(new_indent) for index in indexes)

        write_index_list(RULE_KIND_WILDCARD, self.kind_all_match)
        for key in sorted(self.kind_single_match):
            write_index_list(key, self.kind_single_match[key])

        return "".join(parts)

    def __str__(self) -> str:
        return self.string_indent("")


class RuleIndex(RuleIndexKind):
    """Root of the rule index; it also keeps all rules by name."""

    def __init__(self) -> None:
        super().__init__()
        self._rules: Dict[str, Rule] = {}

    def add_rule(self, rule: Rule) -> None:
        """Add a new rule; a rule name may only be added once."""
        if rule.name in self._rules:
            raise EngineError(f"Cannot add rule {rule.name} twice")

        self._rules[rule.name] = rule
        super().add_rule(rule)

    def rules(self) -> Dict[str, Rule]:
        """All loaded rules by name."""
        return dict(self._rules)