"""
Composite alarm rules as a small boolean expression tree.

Rules such as ``(HighErrorRate OR HighLatency) AND HighMemoryUsage`` are parsed
into Atom / And / Or nodes and evaluated against a map of current alarm states.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from autorecovery.errors import RuleSyntaxError
from autorecovery.models import Severity

logger = logging.getLogger(__name__)

ALARM_STATE = "ALARM"

_TOKEN_RE = re.compile(r"\s*(?:(\()|(\))|([A-Za-z0-9_.:\-]+))")


class Atom(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["atom"] = "atom"
    name: str

    def evaluate(self, states: Mapping[str, str | bool]) -> bool:
        state = states.get(self.name)
        if isinstance(state, bool):
            return state
        return (state or "").upper() == ALARM_STATE

    def alarm_names(self) -> set[str]:
        return {self.name}

    def __str__(self) -> str:
        return self.name


class And(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["and"] = "and"
    left: RuleExpr
    right: RuleExpr

    def evaluate(self, states: Mapping[str, str | bool]) -> bool:
        return self.left.evaluate(states) and self.right.evaluate(states)

    def alarm_names(self) -> set[str]:
        return self.left.alarm_names() | self.right.alarm_names()

    def __str__(self) -> str:
        return f"({self.left} AND {self.right})"


class Or(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["or"] = "or"
    left: RuleExpr
    right: RuleExpr

    def evaluate(self, states: Mapping[str, str | bool]) -> bool:
        return self.left.evaluate(states) or self.right.evaluate(states)

    def alarm_names(self) -> set[str]:
        return self.left.alarm_names() | self.right.alarm_names()

    def __str__(self) -> str:
        return f"({self.left} OR {self.right})"


# Tagged by `op` so dumped rules validate back to the same node types
RuleExpr = Annotated[Atom | And | Or, Field(discriminator="op")]

And.model_rebuild()
Or.model_rebuild()


def _tokenize(text: str) -> list[tuple[str, int]]:
    tokens: list[tuple[str, int]] = []
    pos = 0
    stripped_end = len(text.rstrip())
    while pos < stripped_end:
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise RuleSyntaxError(f"Unexpected character {text[pos]!r}", pos)
        tokens.append((match.group(0).strip(), match.start(match.lastindex or 0)))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive descent: or_expr := and_expr (OR and_expr)*; and_expr := term (AND term)*."""

    def __init__(self, text: str) -> None:
        self._tokens = _tokenize(text)
        self._index = 0

    def _peek(self) -> str | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index][0]
        return None

    def _position(self) -> int | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index][1]
        return None

    def parse(self) -> RuleExpr:
        if not self._tokens:
            raise RuleSyntaxError("Empty rule")
        expr = self._or_expr()
        if self._peek() is not None:
            raise RuleSyntaxError(f"Unexpected token {self._peek()!r}", self._position())
        return expr

    def _or_expr(self) -> RuleExpr:
        expr = self._and_expr()
        while (self._peek() or "").upper() == "OR":
            self._index += 1
            expr = Or(left=expr, right=self._and_expr())
        return expr

    def _and_expr(self) -> RuleExpr:
        expr = self._term()
        while (self._peek() or "").upper() == "AND":
            self._index += 1
            expr = And(left=expr, right=self._term())
        return expr

    def _term(self) -> RuleExpr:
        token = self._peek()
        if token is None:
            raise RuleSyntaxError("Unexpected end of rule")
        if token == "(":
            self._index += 1
            expr = self._or_expr()
            if self._peek() != ")":
                raise RuleSyntaxError("Missing closing parenthesis", self._position())
            self._index += 1
            return expr
        if token == ")" or token.upper() in ("AND", "OR"):
            raise RuleSyntaxError(f"Unexpected token {token!r}", self._position())
        self._index += 1
        return Atom(name=token)


def parse_rule(text: str) -> RuleExpr:
    """Parse rule text into an expression tree. AND binds tighter than OR."""
    return _Parser(text).parse()


class CompositeAlarm(BaseModel):
    """An alarm that fires when its rule holds over the current alarm states."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    severity: Severity = Severity.WARNING
    rule: RuleExpr
    # Catalog component names to remediate when this composite fires
    components: tuple[str, ...] = ()

    @classmethod
    def from_text(
        cls,
        name: str,
        rule: str,
        severity: Severity = Severity.WARNING,
        description: str = "",
        components: Iterable[str] = (),
    ) -> CompositeAlarm:
        return cls(
            name=name,
            description=description,
            severity=severity,
            rule=parse_rule(rule),
            components=tuple(components),
        )

    def is_firing(self, states: Mapping[str, str | bool]) -> bool:
        return self.rule.evaluate(states)


DEFAULT_COMPOSITE_ALARMS: tuple[CompositeAlarm, ...] = (
    CompositeAlarm.from_text(
        "SystemHealthDegraded",
        "(HighErrorRate OR HighLatency) AND HighMemoryUsage",
        severity=Severity.CRITICAL,
        description="Overall system health degraded across several metrics",
        components=("TodoApiHealth", "MemoryUsage"),
    ),
    CompositeAlarm.from_text(
        "CascadingFailureRisk",
        "DatabaseConnectionFailure AND LambdaThrottling",
        severity=Severity.CRITICAL,
        description="High risk of cascading failure",
        components=("DynamoDBHealth", "TodoApiHealth"),
    ),
    CompositeAlarm.from_text(
        "PerformanceDegradation",
        "HighLatency AND (HighMemoryUsage OR DatabaseReadCapacityHigh)",
        severity=Severity.WARNING,
        description="Performance degradation pattern detected",
        components=("ApiGatewayHealth",),
    ),
)


def evaluate_composite_alarms(
    alarms: Iterable[CompositeAlarm],
    states: Mapping[str, str | bool],
) -> list[CompositeAlarm]:
    """Return the composites whose rule holds, in the given order."""
    firing = [alarm for alarm in alarms if alarm.is_firing(states)]
    if firing:
        logger.info(
            "Composite alarms firing",
            extra={"composites": [alarm.name for alarm in firing]},
        )
    return firing
