"""
Guard conditions for category actions.

A condition is one or more comparisons joined by ``and``/``or``::

    frequency > 10
    affectedUsers >= 5 and severity == high
    frequency > 100 or affectedUsers > 5 and severity >= high

Each comparison is ``identifier operator literal`` evaluated against a fixed
set of variables, with ``and`` binding tighter than ``or``. Nothing is ever
executed as code; anything that does not parse or compare cleanly counts as
"not met".
"""

import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from sentinel.domain.models import Incident, Severity

VARIABLES = frozenset({"frequency", "affectedUsers", "severity"})

_OPERATORS: dict[str, Callable[[object, object], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

_COMPARISON = re.compile(
    r"""^\s*(?P<name>[A-Za-z_]\w*)\s*
    (?P<op>>=|<=|==|!=|>|<)\s*
    (?P<literal>-?\d+(?:\.\d+)?|'[^']*'|"[^"]*"|[A-Za-z_]\w*)\s*$""",
    re.VERBOSE,
)
_CONNECTIVE = re.compile(r"\s+(and|or)\s+")


class ConditionError(ValueError):
    """Raised when a condition string does not fit the grammar."""


@dataclass(frozen=True)
class Comparison:
    name: str
    op: str
    literal: float | str

    def evaluate(self, variables: Mapping[str, float | str]) -> bool:
        left = variables[self.name]
        right = self.literal
        if self.name == "severity":
            # Severities compare by rank, so "severity >= high" works.
            left, right = Severity(left).rank, Severity(str(right)).rank
        elif isinstance(right, str):
            raise ConditionError(f"{self.name} must be compared with a number")
        return _OPERATORS[self.op](left, right)


@dataclass(frozen=True)
class Condition:
    """Comparisons joined by connectives; ``and`` binds tighter than ``or``."""

    first: Comparison
    rest: tuple[tuple[str, Comparison], ...] = ()

    def evaluate(self, variables: Mapping[str, float | str]) -> bool:
        clauses: list[list[Comparison]] = [[self.first]]
        for connective, comparison in self.rest:
            if connective == "or":
                clauses.append([comparison])
            else:
                clauses[-1].append(comparison)
        return any(all(c.evaluate(variables) for c in clause) for clause in clauses)


def _parse_comparison(text: str) -> Comparison:
    match = _COMPARISON.match(text)
    if match is None:
        raise ConditionError(f"Cannot parse comparison: {text!r}")
    name = match["name"]
    if name not in VARIABLES:
        raise ConditionError(f"Unknown variable: {name}")
    raw = match["literal"]
    literal: float | str
    if raw[0] in "'\"":
        literal = raw[1:-1]
    elif raw[0].isdigit() or raw[0] == "-":
        literal = float(raw)
    else:
        literal = raw
    return Comparison(name=name, op=match["op"], literal=literal)


def parse_condition(text: str) -> Condition:
    parts = _CONNECTIVE.split(text.strip())
    if not parts or not parts[0]:
        raise ConditionError("Empty condition")
    first = _parse_comparison(parts[0])
    rest = tuple(
        (parts[i], _parse_comparison(parts[i + 1])) for i in range(1, len(parts) - 1, 2)
    )
    return Condition(first=first, rest=rest)


def incident_variables(incident: Incident) -> dict[str, float | str]:
    return {
        "frequency": incident.frequency,
        "affectedUsers": len(incident.affected_users),
        "severity": incident.severity.value,
    }


def condition_holds(text: str, variables: Mapping[str, float | str]) -> bool:
    """Evaluate a guard; parse or evaluation errors mean the guard is not met."""
    try:
        return parse_condition(text).evaluate(variables)
    except (ConditionError, KeyError, ValueError, TypeError):
        return False
