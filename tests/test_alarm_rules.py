"""Tests for composite alarm rule parsing and evaluation."""

import pytest

from autorecovery.errors import RuleSyntaxError
from autorecovery.incident_detection import (
    DEFAULT_COMPOSITE_ALARMS,
    And,
    Atom,
    CompositeAlarm,
    Or,
    evaluate_composite_alarms,
    parse_rule,
)
from autorecovery.models import Severity


def test_parse_two_operand_rule():
    assert parse_rule("DatabaseConnectionFailure AND LambdaThrottling") == And(
        left=Atom(name="DatabaseConnectionFailure"), right=Atom(name="LambdaThrottling")
    )


def test_and_binds_tighter_than_or():
    rule = parse_rule("A OR B AND C")
    assert rule == Or(left=Atom(name="A"), right=And(left=Atom(name="B"), right=Atom(name="C")))


def test_parentheses_and_nesting():
    rule = parse_rule("(HighErrorRate OR HighLatency) AND HighMemoryUsage")
    assert isinstance(rule, And)
    assert rule.alarm_names() == {"HighErrorRate", "HighLatency", "HighMemoryUsage"}
    assert rule.evaluate({"HighLatency": "ALARM", "HighMemoryUsage": "ALARM"})
    assert not rule.evaluate({"HighLatency": "ALARM", "HighMemoryUsage": "OK"})
    assert not rule.evaluate({"HighMemoryUsage": "ALARM"})


def test_operators_are_case_insensitive():
    assert parse_rule("a and b") == And(left=Atom(name="a"), right=Atom(name="b"))


def test_atom_accepts_bool_states():
    assert Atom(name="X").evaluate({"X": True})
    assert not Atom(name="X").evaluate({"X": False})
    assert not Atom(name="X").evaluate({})


@pytest.mark.parametrize("text", ["", "   ", "A AND", "AND B", "(A OR B", "A B", "A ) B", "A & B"])
def test_invalid_rules_raise(text):
    with pytest.raises(RuleSyntaxError):
        parse_rule(text)


def test_rule_syntax_error_is_value_error():
    with pytest.raises(ValueError):
        parse_rule("(A")


def test_default_composites_fire_on_matching_states():
    states = {
        "HighErrorRate": "ALARM",
        "HighMemoryUsage": "ALARM",
        "DatabaseConnectionFailure": "OK",
        "LambdaThrottling": "ALARM",
    }
    firing = evaluate_composite_alarms(DEFAULT_COMPOSITE_ALARMS, states)
    assert [a.name for a in firing] == ["SystemHealthDegraded"]


def test_composite_from_text():
    alarm = CompositeAlarm.from_text(
        "ApiDown", "HighErrorRate OR HighLatency", severity=Severity.CRITICAL, components=["TodoApiHealth"]
    )
    assert alarm.is_firing({"HighLatency": "ALARM"})
    assert alarm.components == ("TodoApiHealth",)
    assert str(alarm.rule) == "(HighErrorRate OR HighLatency)"


def test_composite_survives_dump_and_validate():
    alarm = CompositeAlarm.from_text("X", "A OR B")
    restored = CompositeAlarm.model_validate(alarm.model_dump())
    assert isinstance(restored.rule, Or)
    assert restored == alarm


def test_nested_rule_survives_json_round_trip():
    alarm = CompositeAlarm.from_text("Y", "(A OR B) AND C OR D")
    restored = CompositeAlarm.model_validate_json(alarm.model_dump_json())
    assert str(restored.rule) == "(((A OR B) AND C) OR D)"
    assert restored.is_firing({"D": "ALARM"})
    assert not restored.is_firing({"A": "ALARM"})
