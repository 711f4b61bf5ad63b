"""
Composition root for the error/metrics engine.

Builds every subsystem once from an AppConfig and exposes the inbound
(ingestion, configuration) and query surfaces the host application uses:

1. report_error -> fingerprint -> incident tracker -> actions -> alerts
2. record_metric -> metric store -> threshold evaluation -> actions -> alerts
3. a background collector feeding record_metric from metric sources

Instances are independent: nothing here lives in module-level state.
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

import structlog

from sentinel.config import AppConfig, get_config
from sentinel.domain.categories import DEFAULT_CATEGORIES, Action, ErrorCategory
from sentinel.domain.models import (
    Alert,
    Comparison,
    ErrorReport,
    Incident,
    Metric,
    MetricThreshold,
    Resolution,
    normalize_context,
    utc_now,
)
from sentinel.services.actions import ActionExecutor, IssueSink
from sentinel.services.alert_manager import AlertChannel, AlertManager
from sentinel.services.categorizer import CategoryMatcher
from sentinel.services.fingerprint import generate_fingerprint
from sentinel.services.incident_tracker import IncidentTracker
from sentinel.services.metric_sources import build_default_sources
from sentinel.services.metric_store import DEFAULT_THRESHOLDS, MetricStore, ThresholdBreach
from sentinel.services.metrics_collector import (
    MetricsCollector,
    MetricsCollectorConfig,
    MetricsSource,
)

logger = structlog.get_logger(__name__)


class MonitoringEngine:
    """
    Main service that wires the incident pipeline, alerting and metrics.

    Ingestion never raises for operational conditions; contract violations
    (duplicate channel, unknown id) come back as False.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        categories: Iterable[ErrorCategory] = DEFAULT_CATEGORIES,
        thresholds: Iterable[MetricThreshold] = DEFAULT_THRESHOLDS,
        issue_sink: IssueSink | None = None,
        default_sources: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or get_config()
        self._clock = clock
        self.logger = logger.bind(component="monitoring_engine")

        # Initialize subsystems
        self._init_alerting()
        self._init_incident_pipeline(categories, issue_sink)
        self._init_metrics(thresholds)
        if default_sources:
            self._init_sources()

    def _init_alerting(self) -> None:
        self.alert_manager = AlertManager(self.config.alerting, clock=self._clock)
        self.logger.info("alerting_initialized")

    def _init_incident_pipeline(
        self, categories: Iterable[ErrorCategory], issue_sink: IssueSink | None
    ) -> None:
        self.matcher = CategoryMatcher(categories)
        self.tracker = IncidentTracker(
            self.matcher,
            self.config.escalation,
            self.config.incidents,
            production=self.config.is_production,
            clock=self._clock,
        )
        self.executor = ActionExecutor(self.alert_manager, self.tracker, issue_sink)
        self.logger.info("incident_pipeline_initialized", categories=len(self.matcher.categories))

    def _init_metrics(self, thresholds: Iterable[MetricThreshold]) -> None:
        self.metric_store = MetricStore(
            self.config.metrics.buffer_capacity, thresholds, clock=self._clock
        )
        self.collector = MetricsCollector(
            MetricsCollectorConfig(
                collection_interval_seconds=self.config.metrics.collection_interval_seconds,
                timeout_seconds=self.config.metrics.collection_timeout_seconds,
            ),
            sink=self._ingest_collected,
        )
        self.logger.info("metrics_initialized", capacity=self.config.metrics.buffer_capacity)

    def _init_sources(self) -> None:
        for source in build_default_sources(self.config.metrics):
            self.collector.add_source(source)

    # Inbound: errors

    async def report_error(
        self,
        error: Any,
        context: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        category_hint: str | None = None,
    ) -> str:
        """Ingest one error occurrence and return its incident id (the fingerprint)."""
        report = ErrorReport.coerce(error)
        context = normalize_context(context)

        try:
            sighting = self.tracker.track(report, context, user_id, category_hint)
        except Exception as e:
            self.logger.exception("error_ingestion_failed", error=str(e))
            return generate_fingerprint(report, context, user_id)

        try:
            await self.executor.execute(sighting)
        except Exception as e:
            self.logger.exception(
                "incident_actions_failed", incident_id=sighting.incident.id, error=str(e)
            )
        return sighting.incident.id

    def investigate_incident(self, incident_id: str, assignee: str | None = None) -> bool:
        return self.tracker.investigate(incident_id, assignee)

    def resolve_incident(
        self, incident_id: str, action: str, description: str = "", resolved_by: str = ""
    ) -> bool:
        resolution = Resolution(
            action=action,
            description=description,
            resolved_by=resolved_by,
            timestamp=self._clock(),
        )
        return self.tracker.resolve(incident_id, resolution)

    def ignore_incident(self, incident_id: str) -> bool:
        return self.tracker.ignore(incident_id)

    # Inbound: metrics

    async def record_metric(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
        unit: str | None = None,
    ) -> ThresholdBreach | None:
        breach = self.metric_store.record(name, value, tags, unit)
        if breach is not None:
            await self.executor.execute_breach(breach)
        return breach

    async def _ingest_collected(self, metric: Metric) -> None:
        await self.record_metric(metric.name, metric.value, dict(metric.tags), metric.unit)

    async def record_response_time(self, endpoint: str, milliseconds: float) -> None:
        await self.record_metric("response_time", milliseconds, {"endpoint": endpoint}, "ms")

    async def record_error_rate(self, endpoint: str, rate: float) -> None:
        await self.record_metric("error_rate", rate, {"endpoint": endpoint}, "%")

    async def record_memory_usage(self, percentage: float) -> None:
        await self.record_metric("memory_usage", percentage, unit="%")

    async def record_cpu_usage(self, percentage: float) -> None:
        await self.record_metric("cpu_usage", percentage, unit="%")

    def set_threshold(
        self,
        metric: str,
        warning: float,
        critical: float,
        comparison: Comparison = "gt",
        actions: Iterable[Action] | None = None,
    ) -> MetricThreshold:
        return self.metric_store.set_threshold(metric, warning, critical, comparison, actions)

    def remove_threshold(self, metric: str) -> bool:
        return self.metric_store.remove_threshold(metric)

    # Inbound: delivery and collection

    def register_channel(self, channel: AlertChannel) -> bool:
        return self.alert_manager.register_channel(channel.name, channel)

    def add_metrics_source(self, source: MetricsSource) -> None:
        self.collector.add_source(source)

    def start_collection(self) -> None:
        self.collector.start()

    def stop_collection(self) -> None:
        self.collector.stop()

    def resolve_alert(self, alert_id: str) -> bool:
        return self.alert_manager.resolve_alert(alert_id)

    # Queries

    def get_error_stats(self) -> dict[str, Any]:
        return self.tracker.stats()

    def get_all_incidents(self) -> list[Incident]:
        return self.tracker.all()

    def get_incident(self, incident_id: str) -> Incident | None:
        return self.tracker.get(incident_id)

    def get_alert_stats(self) -> dict[str, Any]:
        return self.alert_manager.get_alert_stats()

    def get_recent_alerts(self, hours: float = 24) -> list[Alert]:
        return self.alert_manager.get_recent_alerts(hours)

    def get_metrics_summary(self) -> dict[str, dict[str, Any]]:
        return self.metric_store.get_summary(self.config.metrics.average_window_minutes)

    def export_prometheus(self) -> str:
        return self.metric_store.export_prometheus()
