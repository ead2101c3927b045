import re

import pytest

from cascade_engine.event import Event
from cascade_engine.rule import Rule, RuleIndex, RuleIndexKind
from cascade_engine.rule_state import RULE_INDEX_IDS
from cascade_engine.util import EngineError


@pytest.fixture(autouse=True)
def reset_index_ids():
    RULE_INDEX_IDS.reset()
    yield
    RULE_INDEX_IDS.reset()


def _noop(processor, monitor, event, tid):
    return None


def names(rules):
    return sorted(rule.name for rule in rules)


def ev(kind, state=None):
    return Event("bla", kind, state)


@pytest.fixture
def simple_index():
    rule = Rule(
        "TestRule",
        "",
        ["core.main.tester", "core.tmp.*"],
        ["data.read", "data.test"],
        None,
        0,
        ["TestRule66"],
        _noop,
    )
    index = RuleIndex()
    index.add_rule(rule)
    return index


SIMPLE_LAYOUT = """\
core - RuleIndexKind (0)
  main - RuleIndexKind (1)
    tester - RuleIndexKind (2)
      RuleIndexAll (3)
        Rule:TestRule [] (Priority:0 Kind:[core.main.tester core.tmp.*] Scope:[data.read data.test] StateMatch:null Suppress:[TestRule66])
  tmp - RuleIndexKind (1)
    * - RuleIndexKind (4)
      RuleIndexAll (5)
        Rule:TestRule [] (Priority:0 Kind:[core.main.tester core.tmp.*] Scope:[data.read data.test] StateMatch:null Suppress:[TestRule66])
"""


def test_simple_missing_scope_match(simple_index):
    with pytest.raises(EngineError, match="Cannot add rule without a scope match: TestRuleError"):
        simple_index.add_rule(
            Rule("TestRuleError", "", ["core.main.tester"], None, None, 0, ["TestRule66"], _noop)
        )


def test_simple_missing_kind_match(simple_index):
    with pytest.raises(EngineError, match="Cannot add rule without a kind match: TestRuleError2"):
        simple_index.add_rule(
            Rule("TestRuleError2", "", [], ["data.read", "data.test"], None, 0, ["TestRule66"], _noop)
        )


def test_simple_layout(simple_index):
    with pytest.raises(EngineError):
        simple_index.add_rule(Rule("TestRuleError", "", ["core.main.tester"], None))
    with pytest.raises(EngineError):
        simple_index.add_rule(Rule("TestRuleError2", "", [], ["data.read"]))
    assert str(simple_index) == SIMPLE_LAYOUT


@pytest.mark.parametrize(
    "kind, expected",
    [
        (["core", "tmp", "bla"], True),
        (["core", "tmp"], False),
        (["core", "tmpp", "bla"], False),
        (["core", "main", "tester"], True),
        (["core", "main", "tester", "bla"], False),
        (["core", "main", "teste"], False),
        (["core", "main"], False),
    ],
)
def test_simple_triggering(simple_index, kind, expected):
    assert simple_index.is_triggering(ev(kind)) is expected


@pytest.mark.parametrize(
    "kind, expected",
    [
        (["core", "main", "tester"], ["TestRule"]),
        (["core", "tmp", "x"], ["TestRule"]),
        (["core", "tmp"], []),
        (["core", "tmp", "x", "y"], []),
    ],
)
def test_simple_match(simple_index, kind, expected):
    assert names(simple_index.match(ev(kind))) == expected


STATE_LAYOUT = """\
core - RuleIndexKind (0)
  main - RuleIndexKind (1)
    tester - RuleIndexKind (2)
      RuleIndexState (3) [TestRule1 TestRule2 TestRule3 ]
        name - 00000007 *:00000007 [] []
        test - 00000007 *:00000000 [val1:00000001 val2:00000006 ] []
        test2 - 00000006 *:00000000 [42:00000006 ] []
        test3 - 00000004 *:00000000 [15:00000004 ] []
  tmp - RuleIndexKind (1)
    * - RuleIndexKind (4)
      RuleIndexState (5) [TestRule1 ]
        name - 00000001 *:00000001 [] []
        test - 00000001 *:00000000 [val1:00000001 ] []
"""


@pytest.fixture
def state_index():
    rule1 = Rule(
        "TestRule1", "", ["core.main.tester", "core.tmp.*"], ["data.read", "data.test"],
        {"name": None, "test": "val1"}, 0, ["TestRule66"], _noop,
    )
    rule2 = Rule(
        "TestRule2", "", ["core.main.tester"], ["data.read"],
        {"name": None, "test": "val2", "test2": 42}, 0, ["TestRule66"], _noop,
    )
    rule3 = Rule(
        "TestRule3", "", ["core.main.tester"], ["data.read"],
        {"name": None, "test": "val2", "test2": 42, "test3": 15}, 0, ["TestRule66"], _noop,
    )
    index = RuleIndex()
    index.add_rule(rule1)
    index.add_rule(rule2)
    index.add_rule(rule3)
    return index, rule3


def test_state_duplicate_rule(state_index):
    index, rule3 = state_index
    with pytest.raises(EngineError, match="Cannot add rule TestRule3 twice"):
        index.add_rule(rule3)
    assert len(index.rules()) == 3


def test_state_layout(state_index):
    index, _ = state_index
    assert str(index) == STATE_LAYOUT


@pytest.mark.parametrize(
    "kind, state, expected",
    [
        (["core", "tmp", "x"], None, []),
        (["core", "tmp", "x"], {"name": None, "test": "val1"}, ["TestRule1"]),
        (["core", "main", "tester"], {"name": None, "test": "val1"}, ["TestRule1"]),
        (["core", "main", "tester"], {"name": "foobar", "test": "val2", "test2": 42}, ["TestRule2"]),
        (
            ["core", "main", "tester"],
            {"name": None, "test": "val2", "test2": 42, "test3": 15},
            ["TestRule2", "TestRule3"],
        ),
    ],
)
def test_state_match(state_index, kind, state, expected):
    index, _ = state_index
    assert names(index.match(ev(kind, state))) == expected


REGEX_LAYOUT = """\
core - RuleIndexKind (0)
  main - RuleIndexKind (1)
    tester - RuleIndexKind (2)
      RuleIndexState (3) [TestRule1 TestRule2 ]
        name - 00000003 *:00000003 [] []
        test - 00000003 *:00000003 [] [00000001:val.* 00000002:va..* ]
  tmp - RuleIndexKind (1)
    * - RuleIndexKind (4)
      RuleIndexState (5) [TestRule1 ]
        name - 00000001 *:00000001 [] []
        test - 00000001 *:00000001 [] [00000001:val.* ]
"""


@pytest.fixture
def regex_index():
    rule1 = Rule(
        "TestRule1", "", ["core.main.tester", "core.tmp.*"], ["data.read", "data.test"],
        {"name": None, "test": re.compile("val.*")}, 0, ["TestRule66"], _noop,
    )
    rule2 = Rule(
        "TestRule2", "", ["core.main.tester"], ["data.read"],
        {"name": None, "test": re.compile("va..*")}, 0, ["TestRule66"], _noop,
    )
    index = RuleIndex()
    index.add_rule(rule1)
    index.add_rule(rule2)
    return index


def test_regex_layout(regex_index):
    assert str(regex_index) == REGEX_LAYOUT


@pytest.mark.parametrize(
    "kind, state, expected",
    [
        (["core", "tmp", "x"], {"name": "boo", "test": "val1"}, ["TestRule1"]),
        (["core", "tmp", "x"], {"name": "boo", "test": "val"}, ["TestRule1"]),
        (["core", "main", "tester"], {"name": "boo", "test": "var"}, ["TestRule2"]),
        (["core", "main", "tester"], {"name": "boo", "test": "val"}, ["TestRule1", "TestRule2"]),
        (["core", "main", "tester", "a"], {"name": "boo", "test": "val"}, []),
    ],
)
def test_regex_match(regex_index, kind, state, expected):
    assert names(regex_index.match(ev(kind, state))) == expected


def test_regex_too_specific_event_does_not_trigger(regex_index):
    assert regex_index.is_triggering(ev(["core", "main", "tester", "a"], {"name": "boo", "test": "val"})) is False


def test_copy_as_keeps_everything_but_name():
    rule = Rule("A", "desc", ["a.b"], ["data"], {"x": 1}, 3, ["B"], _noop)
    copy = rule.copy_as("C")
    assert copy.name == "C"
    assert rule.name == "A"
    assert copy.kind_match is rule.kind_match
    assert copy.state_match is rule.state_match
    assert (copy.desc, copy.priority, copy.action) == ("desc", 3, _noop)


def test_rule_string_with_state_match_and_description():
    rule = Rule("R", "  some text ", ["a.b"], ["data"], {"test": "val1", "name": None}, 4, [], _noop)
    assert str(rule) == (
        'Rule:R [some text] (Priority:4 Kind:[a.b] Scope:[data] '
        'StateMatch:{"name":null,"test":"val1"} Suppress:[])'
    )


def test_kind_index_counts_kind_matches():
    index = RuleIndexKind()
    index.add_rule(Rule("R", "", ["a.b", "a.c", "x"], ["data"]))
    assert index.count == 3
    assert names(index.match(ev(["x"]))) == ["R"]
    assert names(index.match(ev(["a", "c"]))) == ["R"]


def test_wildcard_at_first_level_matches_any_kind():
    index = RuleIndex()
    index.add_rule(Rule("Any", "", ["*"], ["data"]))
    assert index.is_triggering(ev(["whatever"])) is True
    assert index.is_triggering(ev(["whatever", "more"])) is False
    assert names(index.match(ev(["foo"]))) == ["Any"]
    assert "Any" in index.rules()