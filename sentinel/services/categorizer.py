"""
Rule-based error categorization.

Each category scores an error by summing the weights of its matching pattern
rules; the highest score wins, ties keep the earlier category, and nothing
scoring above zero falls back to the uncategorized bucket.
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from sentinel.domain.categories import (
    DEFAULT_CATEGORIES,
    UNCATEGORIZED,
    ErrorCategory,
    PatternField,
)
from sentinel.domain.models import ErrorReport, Severity

logger = structlog.get_logger(__name__)

_PAYMENT_MARKERS = ("payment", "billing")
_SECURITY_MARKERS = ("security", "unauthorized")


def _field_text(field: PatternField, error: ErrorReport, context: Mapping[str, Any]) -> str:
    if field == "message":
        return error.message
    if field == "name":
        return error.name
    if field == "stack":
        return error.stack
    return json.dumps(dict(context), default=str)


class CategoryMatcher:
    """Scores errors against an immutable, ordered rule set."""

    def __init__(self, categories: Iterable[ErrorCategory] = DEFAULT_CATEGORIES) -> None:
        self.categories: tuple[ErrorCategory, ...] = tuple(categories)
        self._by_id = {category.id: category for category in self.categories}
        self._by_id.setdefault(UNCATEGORIZED.id, UNCATEGORIZED)

    def get(self, category_id: str) -> ErrorCategory | None:
        return self._by_id.get(category_id)

    def score(
        self, category: ErrorCategory, error: ErrorReport, context: Mapping[str, Any]
    ) -> float:
        return sum(
            rule.weight
            for rule in category.patterns
            if rule.matches(_field_text(rule.field, error, context))
        )

    def match(self, error: ErrorReport, context: Mapping[str, Any] | None = None) -> ErrorCategory:
        context = context or {}
        best: ErrorCategory | None = None
        highest = 0.0

        for category in self.categories:
            score = self.score(category, error, context)
            if score > highest:
                highest = score
                best = category

        if best is None:
            logger.debug("error_uncategorized", error_name=error.name)
            return UNCATEGORIZED
        return best


def determine_severity(
    error: ErrorReport,
    category: ErrorCategory,
    *,
    has_user: bool,
    production: bool,
) -> Severity:
    """Initial severity for a new incident.

    Context promotions apply once: a signed-in user lifts low to medium, a
    production error lifts one step up to high. Payment/billing text forces
    critical; security/authorization text forces at least high.
    """
    severity = category.priority

    if has_user and severity == Severity.LOW:
        severity = Severity.MEDIUM

    if production and severity in (Severity.LOW, Severity.MEDIUM):
        severity = severity.promote()

    message = error.message.lower()
    if any(marker in message for marker in _PAYMENT_MARKERS):
        return Severity.CRITICAL

    if any(marker in message for marker in _SECURITY_MARKERS):
        return Severity.highest(severity, Severity.HIGH)

    return severity
