"""
Metric sources polled by the collection scheduler.

- SystemMetricsSource: host and process health via psutil
- BusinessMetricsSource: JSON endpoints exposing product KPIs
- PerformanceMetricsSource: timing of the application's health endpoint

Each implements the MetricsSource protocol and reports expected failures as
``Result.err`` rather than raising.
"""

import asyncio
import time
from datetime import UTC, datetime
from typing import Any

import httpx
import psutil
import structlog

from sentinel.config import MetricsConfig
from sentinel.domain.models import Metric
from sentinel.services.metrics_collector import MetricsSource, Result

logger = structlog.get_logger(__name__)

DEFAULT_HTTP_TIMEOUT = 5.0


class SystemMetricsSource:
    """Memory, CPU, process uptime and event-loop lag of the running service."""

    def __init__(self, source_name: str = "system") -> None:
        self.source_name = source_name
        self.logger = logger.bind(source=source_name)
        self._process = psutil.Process()

    async def _event_loop_lag_ms(self) -> float:
        start = time.perf_counter()
        await asyncio.sleep(0)
        return (time.perf_counter() - start) * 1000

    async def collect_metrics(self) -> Result[list[Metric], Exception]:
        try:
            now = datetime.now(UTC)
            uptime = time.time() - self._process.create_time()
            metrics = [
                Metric(
                    name="memory_usage",
                    value=round(psutil.virtual_memory().percent),
                    timestamp=now,
                    unit="%",
                ),
                Metric(
                    name="cpu_usage",
                    value=psutil.cpu_percent(interval=None),
                    timestamp=now,
                    unit="%",
                ),
                Metric(name="process_uptime", value=round(uptime), timestamp=now, unit="seconds"),
                Metric(
                    name="event_loop_lag",
                    value=round(await self._event_loop_lag_ms(), 3),
                    timestamp=now,
                    unit="ms",
                ),
            ]
            self.logger.debug("system_metrics_collected", count=len(metrics))
            return Result.ok(metrics)

        except (psutil.Error, OSError) as e:
            self.logger.error("system_metrics_collection_failed", error=str(e))
            return Result.err(e)


class BusinessMetricsSource:
    """
    Product KPIs from the application's metrics API.

    Endpoints are queried independently; one unavailable endpoint only drops
    the metrics it would have produced.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        source_name: str = "business",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.source_name = source_name
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self._client = client
        self.logger = logger.bind(source=source_name)

    async def _query(self, client: httpx.AsyncClient, endpoint: str) -> dict[str, Any] | None:
        headers = {"Authorization": f"Bearer {self.api_token or ''}"}
        try:
            response = await client.get(f"{self.base_url}{endpoint}", headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.debug("business_metric_query_failed", endpoint=endpoint, error=str(e))
            return None
        return data if isinstance(data, dict) else None

    async def collect_metrics(self) -> Result[list[Metric], Exception]:
        client = self._client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        try:
            dau, signups, bookings = await asyncio.gather(
                self._query(client, "/api/metrics/daily-active-users"),
                self._query(client, "/api/metrics/signup-rate"),
                self._query(client, "/api/metrics/bookings"),
            )
        finally:
            if self._client is None:
                await client.aclose()

        now = datetime.now(UTC)
        metrics: list[Metric] = []
        try:
            if dau is not None:
                metrics.append(
                    Metric(
                        name="daily_active_users",
                        value=dau["count"],
                        timestamp=now,
                        tags={"type": "business"},
                    )
                )
            if signups is not None:
                metrics.append(
                    Metric(
                        name="signup_conversion_rate",
                        value=signups["rate"],
                        timestamp=now,
                        tags={"type": "conversion"},
                        unit="%",
                    )
                )
            if bookings is not None:
                metrics.append(
                    Metric(
                        name="daily_bookings",
                        value=bookings["daily_count"],
                        timestamp=now,
                        tags={"type": "business"},
                    )
                )
                metrics.append(
                    Metric(
                        name="booking_success_rate",
                        value=bookings["success_rate"],
                        timestamp=now,
                        tags={"type": "business"},
                        unit="%",
                    )
                )
        except (KeyError, ValueError) as e:
            self.logger.error("business_metrics_malformed", error=str(e))
            return Result.err(e)

        self.logger.debug("business_metrics_collected", count=len(metrics))
        return Result.ok(metrics)


class PerformanceMetricsSource:
    """Response time and availability of the health endpoint."""

    def __init__(
        self,
        health_url: str,
        source_name: str = "performance",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.source_name = source_name
        self.health_url = health_url
        self._client = client
        self.logger = logger.bind(source=source_name)

    async def collect_metrics(self) -> Result[list[Metric], Exception]:
        client = self._client or httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        try:
            start = time.perf_counter()
            response = await client.get(self.health_url)
            elapsed_ms = (time.perf_counter() - start) * 1000
        except httpx.HTTPError as e:
            self.logger.warning("health_check_failed", url=self.health_url, error=str(e))
            return Result.err(e)
        finally:
            if self._client is None:
                await client.aclose()

        now = datetime.now(UTC)
        tags = {"endpoint": "health"}
        metrics = [
            Metric(
                name="api_response_time",
                value=round(elapsed_ms),
                timestamp=now,
                tags=tags,
                unit="ms",
            ),
            Metric(
                name="api_success_rate",
                value=100 if response.is_success else 0,
                timestamp=now,
                tags=tags,
                unit="%",
            ),
        ]

        if response.is_success:
            try:
                database = response.json().get("checks", {}).get("database", {})
                db_time = database.get("responseTime")
            except (ValueError, AttributeError):
                db_time = None
            if db_time is not None:
                metrics.append(
                    Metric(
                        name="database_response_time",
                        value=db_time,
                        timestamp=now,
                        tags={"type": "database"},
                        unit="ms",
                    )
                )

        self.logger.debug("performance_metrics_collected", count=len(metrics))
        return Result.ok(metrics)


def build_default_sources(
    config: MetricsConfig, client: httpx.AsyncClient | None = None
) -> list[MetricsSource]:
    """The system source, plus the HTTP sources whose endpoints are configured."""
    sources: list[MetricsSource] = [SystemMetricsSource()]
    if config.business_api_url:
        sources.append(
            BusinessMetricsSource(config.business_api_url, config.metrics_api_token, client=client)
        )
    if config.health_check_url:
        sources.append(PerformanceMetricsSource(config.health_check_url, client=client))
    return sources
