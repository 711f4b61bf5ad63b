"""
Error category rule table.

A category is a weighted set of pattern rules plus the actions to run when an
incident lands in it. Action configuration is a tagged union keyed by
``type`` so the executor can dispatch on the concrete variant.
"""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from sentinel.domain.models import Severity

PatternField = Literal["message", "stack", "name", "context"]


class PatternRule(BaseModel):
    """One weighted test against a field of the error.

    Literal patterns are case-insensitive substring tests; regex patterns are
    searched case-insensitively.
    """

    model_config = ConfigDict(frozen=True)

    field: PatternField
    pattern: str
    weight: float = Field(gt=0.0)
    regex: bool = False

    def matches(self, text: str) -> bool:
        if self.regex:
            return re.search(self.pattern, text, re.IGNORECASE) is not None
        return self.pattern.lower() in text.lower()


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    condition: str | None = Field(
        default=None, description="Guard such as 'frequency > 10'; skipped when it does not hold"
    )


class AlertAction(_Action):
    type: Literal["alert"] = "alert"
    channels: list[str] | None = Field(
        default=None, description="Explicit delivery channels; severity routing when unset"
    )
    teams: list[str] = Field(default_factory=list, description="Owning teams, for routing context")
    immediate: bool = False


class CreateIssueAction(_Action):
    type: Literal["create_issue"] = "create_issue"
    project: str
    priority: str | None = None


class AutoFixAction(_Action):
    type: Literal["auto_fix"] = "auto_fix"
    fix_type: str


class IgnoreAction(_Action):
    type: Literal["ignore"] = "ignore"


Action = Annotated[
    AlertAction | CreateIssueAction | AutoFixAction | IgnoreAction,
    Field(discriminator="type"),
]


class ErrorCategory(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    priority: Severity
    patterns: tuple[PatternRule, ...] = ()
    actions: tuple[Action, ...] = ()


def _rx(field: PatternField, pattern: str, weight: float) -> PatternRule:
    return PatternRule(field=field, pattern=pattern, weight=weight, regex=True)


def _lit(field: PatternField, pattern: str, weight: float) -> PatternRule:
    return PatternRule(field=field, pattern=pattern, weight=weight)


UNCATEGORIZED = ErrorCategory(
    id="uncategorized",
    name="Uncategorized Errors",
    description="Errors that don't match any specific category",
    priority=Severity.MEDIUM,
    actions=(CreateIssueAction(project="general"),),
)

DEFAULT_CATEGORIES: tuple[ErrorCategory, ...] = (
    ErrorCategory(
        id="auth_errors",
        name="Authentication Errors",
        description="User authentication and authorization failures",
        priority=Severity.HIGH,
        patterns=(
            _rx("message", r"authentication|unauthorized|forbidden|invalid.*token", 0.8),
            _rx("name", r"AuthenticationError|AuthorizationError", 0.9),
            _lit("context", "auth", 0.7),
        ),
        actions=(
            AlertAction(teams=["security", "backend"], immediate=True),
            CreateIssueAction(project="auth", priority="high"),
        ),
    ),
    ErrorCategory(
        id="payment_errors",
        name="Payment Processing Errors",
        description="Issues with payment processing and billing",
        priority=Severity.CRITICAL,
        patterns=(
            _rx("message", r"payment|billing|charge.*failed|card.*declined", 0.9),
            _rx("context", r"payment|stripe|paypal", 0.8),
        ),
        actions=(
            AlertAction(teams=["finance", "backend"], immediate=True),
            CreateIssueAction(project="payments", priority="critical"),
        ),
    ),
    ErrorCategory(
        id="database_errors",
        name="Database Errors",
        description="Database connection and query issues",
        priority=Severity.HIGH,
        patterns=(
            _rx("message", r"database|connection.*timeout|query.*failed|supabase", 0.8),
            _rx("name", r"DatabaseError|QueryError", 0.9),
            _lit("context", "database", 0.7),
        ),
        actions=(
            AlertAction(teams=["backend", "infrastructure"], immediate=True),
            CreateIssueAction(project="database", priority="high"),
        ),
    ),
    ErrorCategory(
        id="api_errors",
        name="API Errors",
        description="REST API and GraphQL errors",
        priority=Severity.MEDIUM,
        patterns=(
            _rx("message", r"api.*error|http.*error|fetch.*failed", 0.7),
            _lit("context", "api", 0.8),
            _rx("name", r"ApiError|HttpError", 0.8),
        ),
        actions=(
            AlertAction(teams=["backend"]),
            CreateIssueAction(project="api", condition="frequency > 10"),
        ),
    ),
    ErrorCategory(
        id="ui_errors",
        name="UI/Frontend Errors",
        description="React components and frontend JavaScript errors",
        priority=Severity.MEDIUM,
        patterns=(
            _rx("message", r"react|component|render|hook", 0.6),
            _rx("name", r"ChunkLoadError|ReferenceError|TypeError", 0.5),
            _lit("context", "ui", 0.7),
        ),
        actions=(
            AlertAction(teams=["frontend"]),
            CreateIssueAction(project="frontend", condition="affectedUsers > 5"),
        ),
    ),
    ErrorCategory(
        id="external_service_errors",
        name="External Service Errors",
        description="Third-party service integration failures",
        priority=Severity.MEDIUM,
        patterns=(
            _rx("message", r"external.*service|third.*party|integration", 0.7),
            _rx("name", r"ExternalServiceError", 0.9),
            _rx("context", r"external|integration", 0.8),
        ),
        actions=(
            AlertAction(teams=["backend"]),
            CreateIssueAction(project="integrations", condition="frequency > 5"),
        ),
    ),
    ErrorCategory(
        id="performance_errors",
        name="Performance Issues",
        description="Slow queries, timeouts, and performance degradation",
        priority=Severity.MEDIUM,
        patterns=(
            _rx("message", r"timeout|slow|performance|memory", 0.6),
            _lit("context", "performance", 0.9),
        ),
        actions=(
            AlertAction(teams=["performance"]),
            CreateIssueAction(project="performance", condition="frequency > 20"),
        ),
    ),
    ErrorCategory(
        id="security_errors",
        name="Security Violations",
        description="Security-related errors and potential threats",
        priority=Severity.CRITICAL,
        patterns=(
            _rx("message", r"security|xss|csrf|injection|malicious", 0.9),
            _lit("context", "security", 0.9),
        ),
        actions=(
            AlertAction(teams=["security"], immediate=True),
            CreateIssueAction(project="security", priority="critical"),
        ),
    ),
)
