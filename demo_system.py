"""
End-to-end demonstration of the error/metrics pipeline.

This script walks through:
1. Configuration loading
2. Error ingestion, deduplication and categorization
3. Threshold breaches from recorded metrics
4. Alert routing (to an in-process console channel)
5. Prometheus export

Run with: uv run python demo_system.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.notifiers.channels import build_default_channels
from sentinel.config import get_config, print_config_summary
from sentinel.domain.models import Alert, Severity
from sentinel.observability import configure_logging
from sentinel.services.engine import MonitoringEngine

console = Console()

SEVERITY_STYLES = {
    Severity.LOW: "green",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "dark_orange",
    Severity.CRITICAL: "bold red",
}


class ConsoleChannel:
    """Development channel that prints alerts instead of calling a provider."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.enabled = True

    async def send_alert(self, alert: Alert) -> bool:
        console.print(
            f"[{SEVERITY_STYLES[alert.severity]}]{alert.severity.value.upper()}[/] "
            f"via {self.name}: {alert.title}"
        )
        return True


async def demo_errors(engine: MonitoringEngine) -> None:
    console.print(Panel("Reporting errors", style="blue"))

    for user in ("u1", "u2", "u3"):
        await engine.report_error(
            {"name": "TypeError", "message": "Cannot read property 'id' of undefined"},
            {"path": "/checkout"},
            user_id=user,
        )
    await engine.report_error(
        {"name": "Error", "message": "payment failed for order 4411"},
        {"path": "/api/bookings/pay"},
        user_id="u7",
    )
    await engine.report_error(
        {"name": "DatabaseError", "message": "connection timeout after 3000ms"},
        {"path": "/api/studios"},
    )

    table = Table(title="Incidents")
    table.add_column("Id", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Severity")
    table.add_column("Frequency", justify="right")
    table.add_column("Users", justify="right")
    for incident in engine.get_all_incidents():
        table.add_row(
            incident.id,
            incident.category_id,
            f"[{SEVERITY_STYLES[incident.severity]}]{incident.severity.value}[/]",
            str(incident.frequency),
            str(len(incident.affected_users)),
        )
    console.print(table)


async def demo_metrics(engine: MonitoringEngine) -> None:
    console.print(Panel("Recording metrics", style="blue"))

    await engine.record_response_time("/api/studios", 420)
    await engine.record_response_time("/api/bookings", 6000)
    await engine.record_metric("booking_success_rate", 64, {"type": "business"}, "%")

    await engine.collector.collect_once()

    table = Table(title="Metrics Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Latest", style="green", justify="right")
    table.add_column("Average", justify="right")
    table.add_column("Unit", style="yellow")
    for name, summary in engine.get_metrics_summary().items():
        latest = f"{summary['latest']:g}"
        table.add_row(name, latest, str(summary["average"]), summary["unit"] or "")
    console.print(table)

    console.print(Panel(engine.export_prometheus(), title="Prometheus export"))


async def main() -> None:
    config = get_config()
    configure_logging(config.logging)
    print_config_summary(config)

    engine = MonitoringEngine(config)

    # Real channels whose endpoints are configured, console stand-ins for the rest.
    for channel in build_default_channels(config.channels):
        engine.register_channel(channel if channel.enabled else ConsoleChannel(channel.name))

    await demo_errors(engine)
    await demo_metrics(engine)

    console.print(Panel(str(engine.get_alert_stats()), title="Alert stats", style="green"))


if __name__ == "__main__":
    asyncio.run(main())
