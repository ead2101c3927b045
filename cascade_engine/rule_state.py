"""Leaf indexes of the rule index: state matching and match-all."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Sequence

from .event import Event, _format_value
from .util import EngineError, IdCounter

RULE_INDEX_IDS = IdCounter(0)

TYPE_RULE_INDEX_KIND = "RuleIndexKind"
TYPE_RULE_INDEX_STATE = "RuleIndexState"
TYPE_RULE_INDEX_ALL = "RuleIndexAll"


class RuleMatcherKey:
    """Bit mask matcher for the values of a single state key."""

    def __init__(self) -> None:
        self.bits = 0
        self.bits_any = 0
        self.bits_value: Dict[Any, int] = {}
        self.bits_regexes: Dict[int, re.Pattern] = {}

    def add_rule(self, bit: int, value: Any) -> None:
        """Register the rule with the given bit for a required value."""
        self.bits |= bit

        if value is None:
            self.bits_any |= bit
        elif isinstance(value, re.Pattern):
            # Key presence is checked first, then the regex
            self.bits_any |= bit
            self.bits_regexes[bit] = value
        else:
            self.bits_value[value] = self.bits_value.get(value, 0) | bit

    def match(self, bits: int, value: Any) -> int:
        """Remove from bits the rules which do not accept the value."""
        to_remove = self.bits_any ^ self.bits

        if value is not None:
            try:
                additional = self.bits_value.get(value)
            except TypeError:
                additional = None
            if additional is not None:
                to_remove = (self.bits_any | additional) ^ self.bits

        matched = bits ^ (bits & to_remove)

        text = _format_value(value)
        for mask, pattern in self.bits_regexes.items():
            if matched & mask and pattern.search(text) is None:
                matched ^= matched & mask

        return matched

    def unmatch(self, bits: int) -> int:
        """Remove from bits all rules which require this key."""
        return bits ^ (bits & self.bits)

    def __str__(self) -> str:
        values = "".join(
            f"{_format_value(key)}:{self.bits_value[key]:08X} "
            for key in sorted(self.bits_value, key=_format_value)
        )
        regexes = "".join(
            f"{mask:08X}:{self.bits_regexes[mask].pattern} "
            for mask in sorted(self.bits_regexes)
        )
        return f"{self.bits:08X} *:{self.bits_any:08X} [{values}] [{regexes}]"


class RuleIndexState:
    """Leaf index which matches rules on the event state."""

    index_type = TYPE_RULE_INDEX_STATE

    def __init__(self) -> None:
        self.id = RULE_INDEX_IDS.next()
        self.rules: List[Any] = []
        self.key_map: Dict[str, RuleMatcherKey] = {}

    def add_rule_at_level(self, rule: Any, kind_match_level: Sequence[str]) -> None:
        """Add a rule; this index must be a leaf."""
        if kind_match_level:
            raise EngineError(
                f"RuleIndexState must be a leaf - level is: {list(kind_match_level)}"
            )

        bit = 1 << len(self.rules)
        self.rules.append(rule)

        for key, value in rule.state_match.items():
            self.key_map.setdefault(key, RuleMatcherKey()).add_rule(bit, value)

    def is_triggering_at_level(self, event: Event, level: int) -> bool:
        """An event triggers if its kind ends at this level."""
        return len(event.kind) == level

    def match_at_level(self, event: Event, level: int) -> List[Any]:
        """Return the rules whose state conditions the event fulfils."""
        if len(event.kind) != level:
            return []

        match_bits = (1 << len(self.rules)) - 1
        state = event.state or {}

        for key, matcher in self.key_map.items():
            if key in state:
                match_bits = matcher.match(match_bits, state[key])
            else:
                match_bits = matcher.unmatch(match_bits)

            if match_bits == 0:
                return []

        return [rule for i, rule in enumerate(self.rules) if match_bits >> i & 1]

    def string_indent(self, indent: str) -> str:
        """Indented description of this index."""
        names = "".join(f"{rule.name} " for rule in self.rules)
        lines = [f"{indent}{self.index_type} ({self.id}) [{names}]\n"]
        lines.extend(
            f"{indent}  {key} - {self.key_map[key]}\n" for key in sorted(self.key_map)
        )
        return "".join(lines)


class RuleIndexAll:
    """Leaf index which matches all events reaching it."""

    index_type = TYPE_RULE_INDEX_ALL

    def __init__(self) -> None:
        self.id = RULE_INDEX_IDS.next()
        self.rules: List[Any] = []

    def add_rule_at_level(self, rule: Any, kind_match_level: Sequence[str]) -> None:
        """Add a rule."""
        self.rules.append(rule)

    def is_triggering_at_level(self, event: Event, level: int) -> bool:
        """An event triggers if its kind ends at this level."""
        return len(event.kind) == level

    def match_at_level(self, event: Event, level: int) -> List[Any]:
        """Return all rules if the event kind ends at this level."""
        if len(event.kind) != level:
            return []
        return list(self.rules)

    def string_indent(self, indent: str) -> str:
        """Indented description of this index."""
        lines = [f"{indent}{self.index_type} ({self.id})\n"]
        lines.extend(f"{indent}  {rule}\n" for rule in self.rules)
        return "".join(lines)