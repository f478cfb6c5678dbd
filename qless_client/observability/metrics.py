"""
Prometheus metrics collection.
"""

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    REGISTRY,
)

from qless_client.constants import (
    METRIC_COMMANDS,
    METRIC_COMMAND_LATENCY,
    METRIC_SCRIPT_RELOADS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the client.

    Collects metrics for:
    - Script invocations by opcode and outcome
    - Invocation latency
    - Script cache reloads
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.commands = Counter(
            METRIC_COMMANDS,
            "Total number of script invocations",
            ["opcode", "outcome"],
            registry=self._registry,
        )

        self.command_latency = Histogram(
            METRIC_COMMAND_LATENCY,
            "Script invocation round-trip latency in seconds",
            ["opcode"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=self._registry,
        )

        self.script_reloads = Counter(
            METRIC_SCRIPT_RELOADS,
            "Total number of script bodies loaded into the runtime cache",
            ["script"],
            registry=self._registry,
        )

    def record_command(
        self,
        opcode: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record a script invocation."""
        self.commands.labels(opcode=opcode, outcome=outcome).inc()
        self.command_latency.labels(opcode=opcode).observe(duration_seconds)

    def record_script_reload(self, script: str) -> None:
        """Record a script body load."""
        self.script_reloads.labels(script=script).inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
