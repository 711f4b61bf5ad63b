"""
Core services for the engine.

This package contains the incident pipeline (fingerprinting, categorization,
tracking, actions), alert delivery, metric storage and collection.
"""

from .actions import ActionExecutor, IssueSink, LoggingIssueSink
from .alert_manager import AlertChannel, AlertManager, DeliveryStatus, DispatchReport
from .categorizer import CategoryMatcher
from .engine import MonitoringEngine
from .incident_tracker import IncidentTracker, Sighting
from .metric_sources import BusinessMetricsSource, PerformanceMetricsSource, SystemMetricsSource
from .metric_store import MetricStore, ThresholdBreach
from .metrics_collector import MetricsCollector, MetricsCollectorConfig, MetricsSource, Result

__all__ = [
    "ActionExecutor",
    "AlertChannel",
    "AlertManager",
    "BusinessMetricsSource",
    "CategoryMatcher",
    "DeliveryStatus",
    "DispatchReport",
    "IncidentTracker",
    "IssueSink",
    "LoggingIssueSink",
    "MetricStore",
    "MetricsCollector",
    "MetricsCollectorConfig",
    "MetricsSource",
    "MonitoringEngine",
    "PerformanceMetricsSource",
    "Result",
    "Sighting",
    "SystemMetricsSource",
    "ThresholdBreach",
]
