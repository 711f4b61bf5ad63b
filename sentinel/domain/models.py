"""
Domain models for error incidents, alerts and metrics.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; records that are mutated in place
(incidents) are left unfrozen, point-in-time values are frozen.
"""

import traceback
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Comparison = Literal["gt", "lt", "eq"]


def utc_now() -> datetime:
    return datetime.now(UTC)


_MAX_CONTEXT_DEPTH = 8


def _json_safe(value: Any, depth: int = 0) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth >= _MAX_CONTEXT_DEPTH:
        return repr(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item, depth + 1) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item, depth + 1) for item in value]
    return str(value)


def normalize_context(context: Any) -> dict[str, Any]:
    """
    Plain-data copy of a caller context: string keys, JSON-compatible values.

    Anything else (clients, locks, exceptions) is replaced by its string form.
    Non-mapping input yields an empty context.
    """
    if not isinstance(context, Mapping):
        return {}
    return _json_safe(context)


class Severity(str, Enum):
    """Alert severity levels following standard SRE practices."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def promote(self, steps: int = 1) -> "Severity":
        """Move up the ordering, saturating at critical."""
        return _SEVERITY_ORDER[min(self.rank + steps, len(_SEVERITY_ORDER) - 1)]

    @classmethod
    def highest(cls, *levels: "Severity") -> "Severity":
        return max(levels, key=lambda level: level.rank)


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class IncidentStatus(str, Enum):
    NEW = "new"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class ErrorReport(BaseModel):
    """An application error as handed to the engine.

    Missing fields normalize to empty strings; ingestion never rejects input.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    message: str = ""
    stack: str = ""

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorReport":
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(name=type(error).__name__, message=str(error), stack=stack)

    @classmethod
    def coerce(cls, error: Any) -> "ErrorReport":
        """Best-effort conversion of whatever the caller reported."""
        if isinstance(error, ErrorReport):
            return error
        if isinstance(error, BaseException):
            return cls.from_exception(error)
        if isinstance(error, dict):
            return cls(
                name=str(error.get("name") or ""),
                message=str(error.get("message") or ""),
                stack=str(error.get("stack") or ""),
            )
        if error is None:
            return cls()
        return cls(message=str(error))


class Metric(BaseModel):
    """Individual metric reading."""

    model_config = ConfigDict(frozen=True)  # Immutable for better reasoning

    name: str
    value: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tags: dict[str, str] = Field(default_factory=dict)
    unit: str | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def stringify_tags(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, Mapping):
            return {}
        return {str(key): str(item) for key, item in value.items()}


class MetricThreshold(BaseModel):
    """Warning/critical bounds for one metric name."""

    model_config = ConfigDict(frozen=True)

    metric: str
    warning: float
    critical: float
    comparison: Comparison = "gt"


class Alert(BaseModel):
    """A point-in-time notification.

    Frozen: channels render it but never change it. Resolution produces a
    new copy via ``resolved_copy``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    title: str
    message: str
    source: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)
    resolved: bool = False
    resolved_at: datetime | None = None

    @property
    def rate_limit_key(self) -> str:
        return f"{self.source}|{self.title}"

    def resolved_copy(self, when: datetime) -> "Alert":
        return self.model_copy(update={"resolved": True, "resolved_at": when})


class Resolution(BaseModel):
    action: str
    description: str = ""
    resolved_by: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Incident(BaseModel):
    """The tracked record of all occurrences sharing one fingerprint."""

    id: str
    error: ErrorReport
    category_id: str
    category_name: str
    severity: Severity
    frequency: int = Field(default=1, ge=1)
    first_seen: datetime
    last_seen: datetime
    affected_users: set[str] = Field(default_factory=set)
    context: dict[str, Any] = Field(default_factory=dict)
    status: IncidentStatus = IncidentStatus.NEW
    assigned_to: str | None = None
    resolution: Resolution | None = None

    @field_validator("context", mode="before")
    @classmethod
    def plain_context(cls, value: Any) -> dict[str, Any]:
        return normalize_context(value)

    @property
    def is_closed(self) -> bool:
        return self.status in (IncidentStatus.RESOLVED, IncidentStatus.IGNORED)


class IssuePayload(BaseModel):
    """Structured payload handed to the issue-tracking sink."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    project: str
    priority: str
    labels: list[str] = Field(default_factory=list)
    incident_id: str | None = None
