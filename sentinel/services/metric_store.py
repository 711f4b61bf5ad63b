"""
Time-series metric storage with threshold evaluation.

Each metric name owns a bounded ring buffer (oldest points evicted first).
Recording a point immediately checks the metric's threshold and hands back a
breach for the caller to act on; the store itself never sends alerts.
"""

import re
import threading
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Literal

import structlog
from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from sentinel.domain.categories import Action, AlertAction
from sentinel.domain.models import (
    Alert,
    Comparison,
    Metric,
    MetricThreshold,
    Severity,
    utc_now,
)

logger = structlog.get_logger(__name__)

BreachLevel = Literal["warning", "critical"]

DEFAULT_THRESHOLDS: tuple[MetricThreshold, ...] = (
    # Performance
    MetricThreshold(metric="response_time", warning=3000, critical=5000, comparison="gt"),
    MetricThreshold(metric="error_rate", warning=5, critical=10, comparison="gt"),
    MetricThreshold(metric="memory_usage", warning=80, critical=90, comparison="gt"),
    MetricThreshold(metric="cpu_usage", warning=70, critical=85, comparison="gt"),
    # Business
    MetricThreshold(metric="daily_signups", warning=5, critical=1, comparison="lt"),
    MetricThreshold(metric="booking_success_rate", warning=85, critical=70, comparison="lt"),
    MetricThreshold(metric="user_retention_7d", warning=40, critical=25, comparison="lt"),
)

_DEFAULT_ACTIONS: tuple[Action, ...] = (AlertAction(),)

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_]")


def prometheus_name(name: str) -> str:
    """Sanitize to a Prometheus-safe identifier."""
    safe = _UNSAFE_NAME.sub("_", name)
    if not safe or safe[0].isdigit():
        safe = f"_{safe}"
    return safe


def evaluate_threshold(value: float, threshold: MetricThreshold) -> BreachLevel | None:
    comparison: Comparison = threshold.comparison
    if comparison == "gt":
        if value >= threshold.critical:
            return "critical"
        if value >= threshold.warning:
            return "warning"
    elif comparison == "lt":
        if value <= threshold.critical:
            return "critical"
        if value <= threshold.warning:
            return "warning"
    elif comparison == "eq":
        if value == threshold.critical:
            return "critical"
        if value == threshold.warning:
            return "warning"
    return None


@dataclass(frozen=True)
class ThresholdBreach:
    metric: Metric
    threshold: MetricThreshold
    level: BreachLevel
    actions: tuple[Action, ...] = _DEFAULT_ACTIONS

    @property
    def severity(self) -> Severity:
        return Severity.CRITICAL if self.level == "critical" else Severity.HIGH

    @property
    def limit(self) -> float:
        return self.threshold.critical if self.level == "critical" else self.threshold.warning

    def to_alert(self, alert_id: str) -> Alert:
        name = self.metric.name
        unit = self.metric.unit or ""
        reading = f"{self.metric.value:g}{unit}"
        return Alert(
            id=alert_id,
            severity=self.severity,
            title=f"{name} Threshold Exceeded",
            message=f"{name} is {reading} ({self.level} threshold: {self.limit:g})",
            source="metrics-collector",
            timestamp=self.metric.timestamp,
            metadata={
                "metric": name,
                "value": self.metric.value,
                "threshold": self.limit,
                "level": self.level,
                "unit": self.metric.unit,
                "tags": dict(self.metric.tags),
            },
        )


class _LatestValueCollector:
    """Presents the latest point of every series as a gauge family."""

    def __init__(self, latest: Iterable[Metric]) -> None:
        self._latest = list(latest)

    def collect(self) -> Iterator[GaugeMetricFamily]:
        # Names that sanitize alike share one family; the newest point wins per label set.
        families: dict[str, list[Metric]] = {}
        for metric in sorted(self._latest, key=lambda m: m.timestamp):
            families.setdefault(prometheus_name(metric.name), []).append(metric)

        for family_name, metrics in families.items():
            samples: dict[tuple[str, ...], float] = {}
            label_names = sorted({prometheus_name(tag) for m in metrics for tag in m.tags})
            for metric in metrics:
                labels = {prometheus_name(tag): value for tag, value in metric.tags.items()}
                samples[tuple(labels.get(name, "") for name in label_names)] = metric.value

            sources = ", ".join(sorted({m.name for m in metrics}))
            family = GaugeMetricFamily(family_name, f"{sources} metric", labels=label_names)
            for label_values, value in samples.items():
                family.add_metric(list(label_values), value)
            yield family


class MetricStore:
    def __init__(
        self,
        capacity: int = 1000,
        thresholds: Iterable[MetricThreshold] = DEFAULT_THRESHOLDS,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._clock = clock
        self._series: dict[str, deque[Metric]] = {}
        self._thresholds: dict[str, MetricThreshold] = {t.metric: t for t in thresholds}
        self._threshold_actions: dict[str, tuple[Action, ...]] = {}
        self._lock = threading.Lock()
        self._threshold_lock = threading.Lock()
        self.logger = logger.bind(component="metric_store")

    # Thresholds

    def set_threshold(
        self,
        metric: str,
        warning: float,
        critical: float,
        comparison: Comparison = "gt",
        actions: Iterable[Action] | None = None,
    ) -> MetricThreshold:
        """Register a threshold; the last registration for a name wins."""
        threshold = MetricThreshold(
            metric=metric, warning=warning, critical=critical, comparison=comparison
        )
        with self._threshold_lock:
            self._thresholds[metric] = threshold
            if actions is not None:
                self._threshold_actions[metric] = tuple(actions)
            else:
                self._threshold_actions.pop(metric, None)
        self.logger.info("threshold_added", metric=metric, comparison=comparison)
        return threshold

    def remove_threshold(self, metric: str) -> bool:
        with self._threshold_lock:
            removed = self._thresholds.pop(metric, None) is not None
            self._threshold_actions.pop(metric, None)
        if removed:
            self.logger.info("threshold_removed", metric=metric)
        return removed

    def get_threshold(self, metric: str) -> MetricThreshold | None:
        with self._threshold_lock:
            return self._thresholds.get(metric)

    # Recording

    def record(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
        unit: str | None = None,
    ) -> ThresholdBreach | None:
        metric = Metric(
            name=name, value=value, timestamp=self._clock(), tags=tags or {}, unit=unit
        )
        self.add(metric)
        return self.check(metric)

    def add(self, metric: Metric) -> None:
        with self._lock:
            series = self._series.get(metric.name)
            if series is None:
                series = self._series[metric.name] = deque(maxlen=self.capacity)
            series.append(metric)
        self.logger.debug(
            "metric_recorded", metric=metric.name, value=metric.value, unit=metric.unit
        )

    def check(self, metric: Metric) -> ThresholdBreach | None:
        with self._threshold_lock:
            threshold = self._thresholds.get(metric.name)
            actions = self._threshold_actions.get(metric.name, _DEFAULT_ACTIONS)
        if threshold is None:
            return None

        level = evaluate_threshold(metric.value, threshold)
        if level is None:
            return None

        self.logger.warning(
            "threshold_breached", metric=metric.name, value=metric.value, level=level
        )
        return ThresholdBreach(metric=metric, threshold=threshold, level=level, actions=actions)

    # Queries

    def names(self) -> list[str]:
        with self._lock:
            return list(self._series)

    def get_metrics(self, name: str, limit: int | None = None) -> list[Metric]:
        with self._lock:
            points = list(self._series.get(name, ()))
        return points[-limit:] if limit else points

    def get_latest(self, name: str) -> Metric | None:
        with self._lock:
            series = self._series.get(name)
            return series[-1] if series else None

    def get_average(self, name: str, minutes_back: float = 60) -> float | None:
        cutoff = self._clock() - timedelta(minutes=minutes_back)
        recent = [m.value for m in self.get_metrics(name) if m.timestamp >= cutoff]
        if not recent:
            return None
        return round(sum(recent) / len(recent), 2)

    def get_summary(self, minutes_back: float = 60) -> dict[str, dict[str, Any]]:
        summary: dict[str, dict[str, Any]] = {}
        for name in self.names():
            latest = self.get_latest(name)
            if latest is None:
                continue
            summary[name] = {
                "latest": latest.value,
                "average": self.get_average(name, minutes_back),
                "unit": latest.unit,
                "timestamp": latest.timestamp,
                "tags": dict(latest.tags),
            }
        return summary

    def export_prometheus(self) -> str:
        """Render the latest value of every series in the text exposition format."""
        latest = [m for m in (self.get_latest(name) for name in self.names()) if m is not None]
        registry = CollectorRegistry()
        registry.register(_LatestValueCollector(latest))
        return generate_latest(registry).decode("utf-8")
