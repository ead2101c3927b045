import re
from types import SimpleNamespace

import pytest

from cascade_engine.event import Event
from cascade_engine.rule_state import RuleIndexAll, RuleIndexState, RuleMatcherKey
from cascade_engine.util import EngineError

TESTER = ["core", "main", "tester"]


def _rule(name, state_match):
    return SimpleNamespace(name=name, state_match=state_match)


def _names(rules):
    return sorted(rule.name for rule in rules)


@pytest.fixture
def state_index():
    index = RuleIndexState()
    index.add_rule_at_level(_rule("TestRule1", {"name": None, "test": "val1"}), [])
    index.add_rule_at_level(
        _rule("TestRule2", {"name": None, "test": "val2", "test2": 42}), []
    )
    index.add_rule_at_level(
        _rule("TestRule3", {"name": None, "test": "val2", "test2": 42, "test3": 15}), []
    )
    return index


def test_state_index_layout(state_index):
    expected = (
        f"RuleIndexState ({state_index.id}) [TestRule1 TestRule2 TestRule3 ]\n"
        "  name - 00000007 *:00000007 [] []\n"
        "  test - 00000007 *:00000000 [val1:00000001 val2:00000006 ] []\n"
        "  test2 - 00000006 *:00000000 [42:00000006 ] []\n"
        "  test3 - 00000004 *:00000000 [15:00000004 ] []\n"
    )
    assert state_index.string_indent("") == expected


def test_state_index_without_state_matches_nothing(state_index):
    assert state_index.match_at_level(Event("bla", TESTER, None), 3) == []


def test_state_index_single_matches(state_index):
    res = state_index.match_at_level(Event("bla", TESTER, {"name": None, "test": "val1"}), 3)
    assert _names(res) == ["TestRule1"]

    res = state_index.match_at_level(
        Event("bla", TESTER, {"name": "foobar", "test": "val2", "test2": 42}), 3
    )
    assert _names(res) == ["TestRule2"]


def test_state_index_multiple_matches(state_index):
    res = state_index.match_at_level(
        Event("bla", TESTER, {"name": None, "test": "val2", "test2": 42, "test3": 15}), 3
    )
    assert _names(res) == ["TestRule2", "TestRule3"]


def test_state_index_level_must_match(state_index):
    event = Event("bla", TESTER, {"name": None, "test": "val1"})
    assert state_index.match_at_level(event, 2) == []
    assert state_index.is_triggering_at_level(event, 3) is True
    assert state_index.is_triggering_at_level(event, 2) is False


def test_state_index_must_be_leaf():
    index = RuleIndexState()
    with pytest.raises(EngineError):
        index.add_rule_at_level(_rule("r", {}), ["x"])


def test_regex_matching():
    index = RuleIndexState()
    index.add_rule_at_level(_rule("TestRule1", {"name": None, "test": re.compile("val.*")}), [])
    index.add_rule_at_level(_rule("TestRule2", {"name": None, "test": re.compile("va..*")}), [])

    assert str(index.key_map["test"]) == "00000003 *:00000003 [] [00000001:val.* 00000002:va..* ]"
    assert str(index.key_map["name"]) == "00000003 *:00000003 [] []"

    def match(value):
        return _names(index.match_at_level(Event("bla", TESTER, {"name": "boo", "test": value}), 3))

    assert match("var") == ["TestRule2"]
    assert match("val") == ["TestRule1", "TestRule2"]


def test_matcher_key_unmatch_and_any():
    matcher = RuleMatcherKey()
    matcher.add_rule(1, None)
    matcher.add_rule(2, "x")
    assert matcher.unmatch(3) == 0
    assert matcher.match(3, "x") == 3
    assert matcher.match(3, "y") == 1
    assert matcher.match(3, None) == 1


def test_index_all_matches_at_leaf():
    class _Named:
        def __init__(self, name):
            self.name = name

        def __str__(self):
            return f"Rule:{self.name}"

    index = RuleIndexAll()
    first, second = _Named("a"), _Named("b")
    index.add_rule_at_level(first, [])
    index.add_rule_at_level(second, [])

    assert index.match_at_level(Event("e", ["x", "y"], None), 2) == [first, second]
    assert index.match_at_level(Event("e", ["x", "y", "z"], None), 2) == []
    assert index.is_triggering_at_level(Event("e", ["x"], None), 1) is True
    assert index.string_indent("  ") == (
        f"  RuleIndexAll ({index.id})\n    Rule:a\n    Rule:b\n"
    )


def test_index_ids_are_unique():
    ids = {RuleIndexAll().id, RuleIndexState().id, RuleIndexAll().id}
    assert len(ids) == 3