from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

from cascade_engine.util import EngineError, IdCounter, RuleScope, sort_rules


def test_rule_scope_paths():
    rs = RuleScope(
        {
            "test.first.read": True,
            "test.first.write": False,
            "test.second": True,
        }
    )
    assert rs.is_allowed("test.first") is False
    assert rs.is_allowed("test.first.write") is False
    assert rs.is_allowed("test.first.read") is True
    assert rs.is_allowed("test.second") is True
    assert rs.is_allowed("test.second.bla") is True


def test_rule_scope_all_allowed():
    rs = RuleScope({"": True})
    assert rs.is_allowed("test.first") is True
    assert rs.is_allowed("test.first.write") is True


def test_rule_scope_nothing_allowed():
    rs = RuleScope(None)
    assert rs.is_allowed("test.first") is False
    assert rs.is_allowed("test.first.write") is False


def test_is_allowed_all():
    rs = RuleScope({"data": True, "data.read": True, "data.write": False})
    assert rs.is_allowed_all(["data", "data.read"]) is True
    assert rs.is_allowed_all(["data.read", "data.write"]) is False
    assert rs.is_allowed_all([]) is True


def test_add_overrides_definition():
    rs = RuleScope({"data": False})
    assert rs.is_allowed("data") is False
    rs.add("data", True)
    assert rs.is_allowed("data.x") is True


def test_id_counter_counts_and_resets():
    counter = IdCounter()
    assert [counter.next(), counter.next(), counter.next()] == [1, 2, 3]
    counter.reset()
    assert counter.next() == 1


def test_id_counter_custom_start():
    counter = IdCounter(0)
    assert counter.next() == 0
    counter.next()
    counter.reset()
    assert counter.next() == 0


def test_id_counter_unique_across_threads():
    counter = IdCounter()

    def draw(_):
        return [counter.next() for _ in range(200)]

    with ThreadPoolExecutor(max_workers=4) as executor:
        chunks = list(executor.map(draw, range(4)))

    ids = sorted(i for chunk in chunks for i in chunk)
    assert ids == list(range(1, 801))


def test_sort_rules_by_priority():
    rules = [
        SimpleNamespace(name="a", priority=2),
        SimpleNamespace(name="b", priority=5),
        SimpleNamespace(name="c", priority=0),
    ]
    assert [r.name for r in sort_rules(rules)] == ["c", "a", "b"]
    assert [r.name for r in rules] == ["a", "b", "c"]


def test_engine_error_carries_message():
    err = EngineError("boom")
    assert str(err) == "boom"
    assert err.args == ("boom",)