"""Category selection is a deterministic weighted argmax over the rule table."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from sentinel.domain.categories import (
    DEFAULT_CATEGORIES,
    UNCATEGORIZED,
    ErrorCategory,
    PatternRule,
)
from sentinel.domain.models import ErrorReport, Severity
from sentinel.services.categorizer import CategoryMatcher, determine_severity


@pytest.fixture
def matcher() -> CategoryMatcher:
    return CategoryMatcher()


@pytest.mark.parametrize(
    "error,context,expected",
    [
        (
            ErrorReport(name="TypeError", message="Cannot read property 'id' of undefined"),
            {"path": "/checkout"},
            "ui_errors",
        ),
        (ErrorReport(name="Error", message="Card declined by issuer"), {}, "payment_errors"),
        (
            ErrorReport(name="DatabaseError", message="query failed: relation missing"),
            {},
            "database_errors",
        ),
        (ErrorReport(name="Error", message="Invalid refresh token"), {}, "auth_errors"),
        (ErrorReport(name="Error", message="boom"), {"source": "api"}, "api_errors"),
        (ErrorReport(name="Error", message="possible XSS payload"), {}, "security_errors"),
        (ErrorReport(name="Error", message="request was slow"), {}, "performance_errors"),
    ],
)
def test_builtin_categories(
    matcher: CategoryMatcher, error: ErrorReport, context: dict[str, str], expected: str
) -> None:
    assert matcher.match(error, context).id == expected


def test_no_match_falls_back_to_uncategorized(matcher: CategoryMatcher) -> None:
    category = matcher.match(ErrorReport(name="Oops", message="nothing recognisable"), {})

    assert category is UNCATEGORIZED
    assert category.priority == Severity.MEDIUM
    assert [action.type for action in category.actions] == ["create_issue"]


def test_literal_patterns_are_case_insensitive() -> None:
    rule = PatternRule(field="message", pattern="Timeout", weight=1.0)
    assert rule.matches("gateway TIMEOUT")
    assert not rule.matches("gateway closed")


def test_stack_field_is_matched() -> None:
    category = ErrorCategory(
        id="vendor",
        name="Vendor",
        priority=Severity.LOW,
        patterns=(PatternRule(field="stack", pattern=r"node_modules/\w+", weight=1.0, regex=True),),
    )
    matcher = CategoryMatcher([category])
    error = ErrorReport(name="Error", message="x", stack="at f (node_modules/lib/index.js)")

    assert matcher.match(error).id == "vendor"


def test_ties_keep_first_declared_category() -> None:
    first = ErrorCategory(
        id="first",
        name="First",
        priority=Severity.LOW,
        patterns=(PatternRule(field="message", pattern="boom", weight=0.5),),
    )
    second = first.model_copy(update={"id": "second", "name": "Second"})

    assert CategoryMatcher([first, second]).match(ErrorReport(message="boom")).id == "first"
    assert CategoryMatcher([second, first]).match(ErrorReport(message="boom")).id == "second"


def test_category_hint_lookup(matcher: CategoryMatcher) -> None:
    assert matcher.get("payment_errors") is not None
    assert matcher.get("uncategorized") is UNCATEGORIZED
    assert matcher.get("nope") is None


@given(message=st.text(max_size=60), name=st.sampled_from(["Error", "TypeError", "ApiError"]))
def test_non_matching_rule_never_changes_result(message: str, name: str) -> None:
    error = ErrorReport(name=name, message=message)
    baseline = CategoryMatcher(DEFAULT_CATEGORIES).match(error)

    never = ErrorCategory(
        id="never",
        name="Never",
        priority=Severity.CRITICAL,
        patterns=(PatternRule(field="name", pattern="\x00never\x00", weight=5.0),),
    )
    extended = CategoryMatcher((*DEFAULT_CATEGORIES, never))

    assert extended.match(error).id == baseline.id
    assert CategoryMatcher(DEFAULT_CATEGORIES).match(error).id == baseline.id


class TestDetermineSeverity:
    def _category(self, priority: Severity) -> ErrorCategory:
        return ErrorCategory(id="c", name="C", priority=priority)

    def test_payment_text_forces_critical(self) -> None:
        error = ErrorReport(message="payment failed")
        severity = determine_severity(
            error, self._category(Severity.LOW), has_user=False, production=False
        )
        assert severity == Severity.CRITICAL

    def test_security_text_forces_at_least_high(self) -> None:
        error = ErrorReport(message="unauthorized access")
        assert (
            determine_severity(
                error, self._category(Severity.LOW), has_user=False, production=False
            )
            == Severity.HIGH
        )
        assert (
            determine_severity(
                error, self._category(Severity.CRITICAL), has_user=False, production=False
            )
            == Severity.CRITICAL
        )

    def test_user_promotes_low_to_medium(self) -> None:
        error = ErrorReport(message="x")
        assert (
            determine_severity(error, self._category(Severity.LOW), has_user=True, production=False)
            == Severity.MEDIUM
        )

    @pytest.mark.parametrize(
        "priority,expected",
        [
            (Severity.LOW, Severity.MEDIUM),
            (Severity.MEDIUM, Severity.HIGH),
            (Severity.HIGH, Severity.HIGH),
        ],
    )
    def test_production_promotes_one_step(self, priority: Severity, expected: Severity) -> None:
        error = ErrorReport(message="x")
        assert (
            determine_severity(error, self._category(priority), has_user=False, production=True)
            == expected
        )
