"""Tests for policy evaluation and execution events."""

import pytest

from engine import BufferTracer, BuiltinError, EventOp, PolicyEvalError, Query, Term

INPUT = {
    "servers": {
        "web": {"port": 80, "protocols": ["http"], "tags": {"env": "prod"}},
        "db": {"port": 5432, "protocols": ["tcp"], "tags": {"env": "dev"}},
    },
    "name": "Stack-01",
    "limit": 2,
}


def evaluate(policy: str, query: str = "data.policy.result", input=INPUT, tracers=()):
    return [t.to_python() for t in Query(query, "package policy\n" + policy, input=input, tracers=tracers).eval()]


def test_partial_set_is_sorted_and_deduplicated():
    policy = """
result[name] { input.servers[name] }
result[name] { input.servers[name].tags.env == "prod" }
"""
    assert evaluate(policy) == [["db", "web"]]


def test_complete_rule_and_default():
    policy = """
default result := "closed"
result := "open" { input.servers[_].port == 80 }
"""
    assert evaluate(policy) == ["open"]
    assert evaluate(policy, input={"servers": {}}) == ["closed"]


def test_undefined_rule_yields_no_results():
    assert evaluate("result { input.missing }") == []


def test_conflicting_complete_values():
    policy = "result := port { port := input.servers[_].port }"
    with pytest.raises(PolicyEvalError, match="conflicting values"):
        evaluate(policy)


def test_negation():
    policy = 'result[name] { input.servers[name]; not input.servers[name].tags.env == "prod" }'
    assert evaluate(policy) == [["db"]]


def test_array_destructuring_and_strings():
    policy = """
result := {"prefix": lower(prefix), "number": to_number(number), "joined": concat("/", [prefix, number])} {
    [prefix, number] := split(input.name, "-")
}
"""
    assert evaluate(policy) == [{"prefix": "stack", "number": 1, "joined": "Stack/01"}]


def test_rules_reference_each_other():
    policy = """
prod[name] { input.servers[name].tags.env == "prod" }
result := count(prod) + input.limit
"""
    assert evaluate(policy) == [3]


def test_data_query_for_nested_value():
    policy = 'result := {"a": {"b": 1}}'
    assert evaluate(policy, query="data.policy.result.a.b") == [1]
    assert evaluate(policy, query="data.policy") == [{"result": {"a": {"b": 1}}}]


@pytest.mark.parametrize(
    "expression, expected",
    [
        ('sprintf("%s has %d items (%.1f%%)", ["x", 3, 12.5])', "x has 3 items (12.5%)"),
        ('sprintf("%v", [{"a": [1, true]}])', '{"a":[1,true]}'),
        ('format_int(255, 16)', "ff"),
        ('trim("--a--", "-")', "a"),
        ('replace("a.b.c", ".", "/")', "a/b/c"),
        ('object.get({"a": 1}, "b", "fallback")', "fallback"),
        ('startswith(input.name, "Stack")', True),
        ('contains(input.name, "-0")', True),
        ('regex.match("^[A-Z][a-z]+-\\\\d+$", input.name)', True),
        ("7 % 3 + 10 / 4", 3.5),
        ("is_number(input.limit)", True),
        ("is_string(input.limit)", False),
    ],
)
def test_builtins(expression, expected):
    assert evaluate(f"result := {expression}") == [expected]


def test_comparison_between_types_is_undefined():
    assert evaluate('result { input.name < 3 }') == []


def test_builtin_type_error_carries_position():
    with pytest.raises(BuiltinError) as excinfo:
        evaluate("result := x {\n  x := input.name * 2\n}")
    assert (excinfo.value.line, excinfo.value.column) == (3, 19)
    assert "mul" in excinfo.value.message


def test_division_by_zero():
    with pytest.raises(BuiltinError, match="divide by zero"):
        evaluate("result := input.limit / 0")


def test_unsafe_variable():
    with pytest.raises(PolicyEvalError, match="unsafe"):
        evaluate("result { x == 1 }")


def test_recursive_rules_are_rejected():
    with pytest.raises(PolicyEvalError, match="recursive"):
        evaluate("result := other\nother := result")


def test_input_term_keeps_provenance():
    document = Term.from_python({"a": {"b": "value"}})
    document.value["a"].value["b"].provenance = "marker"
    tracer = BufferTracer()
    Query("data.policy.result", "package policy\nresult { x := input.a.b }", input=document, tracers=[tracer]).eval()

    unify = [e for e in tracer.events if e.op is EventOp.UNIFY]
    assert len(unify) == 1
    left, right = unify[0].node.operands()
    assert unify[0].plug(left) is document.value["a"].value["b"]
    assert unify[0].plug(right).provenance == "marker"


def test_event_sequence():
    tracer = BufferTracer()
    Query(
        "data.policy.result",
        "package policy\nresult { x := input.limit; x > 5 }",
        input=INPUT,
        tracers=[tracer],
    ).eval()

    assert tracer.ops() == [
        EventOp.ENTER,
        EventOp.EVAL,
        EventOp.UNIFY,
        EventOp.EVAL,
        EventOp.FAIL,
        EventOp.EXIT,
    ]


def test_calls_emit_one_eval_per_argument_solution():
    tracer = BufferTracer()
    evaluate('result[p] { p := input.servers[_].port; p > 100 }', tracers=[tracer])
    evals = [e for e in tracer.events if e.op is EventOp.EVAL and e.node.operator == "gt"]
    assert len(evals) == 2
