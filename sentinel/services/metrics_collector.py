"""
Periodic metrics collection.

Key patterns:
- Protocol-based dependency injection for metric sources
- Generic Result type for expected failures
- Structured concurrency with asyncio.TaskGroup and per-source timeouts
- A background task driving fixed-interval ticks
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Generic, Protocol, TypeVar

import structlog
from pydantic import BaseModel, Field

from sentinel.domain.models import Metric

logger = structlog.get_logger(__name__)

# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Makes error paths visible in the type system and forces a handling
    decision at the call site.
    """

    def __init__(self, value: ValueT | None = None, error: ErrorT | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class MetricsSource(Protocol):
    """
    How metrics are pulled from one origin (system, business, performance).

    Single async method; expected failures come back as ``Result.err``.
    """

    source_name: str

    async def collect_metrics(self) -> Result[list[Metric], Exception]: ...


MetricSink = Callable[[Metric], Awaitable[None]]


class MetricsCollectorConfig(BaseModel):
    """
    Configuration with validation and smart defaults.
    """

    collection_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Interval between metric collections in seconds.",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for individual metric collection in seconds.",
    )


class MetricsCollector:
    """
    Polls every registered source on a fixed interval and feeds the results
    to a sink.

    A slow or failing source is logged and skipped for that tick; it never
    blocks its siblings or the next tick.
    """

    def __init__(self, config: MetricsCollectorConfig, sink: MetricSink) -> None:
        self.config = config
        self.sink = sink
        self.sources: list[MetricsSource] = []
        self.logger = logger.bind(component="metrics_collector")
        self._task: asyncio.Task[None] | None = None

    def add_source(self, source: MetricsSource) -> None:
        """Add a metrics source. Validates source implements protocol correctly."""
        if not hasattr(source, "collect_metrics"):
            raise TypeError(f"Source {source} must implement MetricsSource protocol")
        self.sources.append(source)
        self.logger.info("source_added", source=source.source_name)

    def remove_source(self, source: MetricsSource) -> None:
        self.sources.remove(source)
        self.logger.info("source_removed", source=source.source_name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _collect_from(self, source: MetricsSource) -> Result[list[Metric], Exception]:
        try:
            return await asyncio.wait_for(
                source.collect_metrics(), timeout=self.config.timeout_seconds
            )
        except TimeoutError as e:
            self.logger.warning("source_collection_timeout", source=source.source_name)
            return Result.err(e)
        except Exception as e:
            self.logger.exception(
                "unexpected_source_collection_error", source=source.source_name, error=str(e)
            )
            return Result.err(e)

    async def collect_once(self) -> list[Metric]:
        """Collect from all sources concurrently and forward every metric to the sink."""
        start_time = time.perf_counter()

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                (source, task_group.create_task(self._collect_from(source)))
                for source in self.sources
            ]

        collected: list[Metric] = []
        successful = 0
        for source, task in tasks:
            result = task.result()
            if result.is_err():
                self.logger.warning(
                    "source_collection_failed",
                    source=source.source_name,
                    error=str(result.unwrap_err()),
                )
                continue
            successful += 1
            collected.extend(result.unwrap())

        for metric in collected:
            try:
                await self.sink(metric)
            except Exception as e:
                self.logger.exception("metric_sink_failed", metric=metric.name, error=str(e))

        self.logger.info(
            "metrics_collection_completed",
            total_metrics=len(collected),
            successful_sources=successful,
            total_sources=len(self.sources),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return collected

    async def _run(self) -> None:
        interval = self.config.collection_interval_seconds
        self.logger.info("metrics_collection_started", interval_seconds=interval)

        while True:
            tick_start = time.perf_counter()
            try:
                await self.collect_once()
            except Exception as e:
                self.logger.exception("metrics_collection_error", error=str(e))

            elapsed = time.perf_counter() - tick_start
            sleep_time = max(0.0, interval - elapsed)
            if sleep_time == 0:
                self.logger.warning(
                    "metrics_collection_slower_than_interval",
                    elapsed_seconds=round(elapsed, 3),
                    interval_seconds=interval,
                )
            await asyncio.sleep(sleep_time)

    def start(self) -> None:
        """Start ticking in the background. Restarts if already running."""
        if self.is_running:
            self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="metrics-collector")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            self.logger.info("metrics_collection_stopped")

    @asynccontextmanager
    async def collection_session(self) -> AsyncIterator["MetricsCollector"]:
        """Run the collector for the duration of the block."""
        self.start()
        try:
            yield self
        finally:
            task = self._task
            self.stop()
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
