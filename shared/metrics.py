"""
Shared metrics configuration for the search rules service.
"""

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the validation and query compilation metrics."""

        self._metrics["validations_total"] = Counter(
            "validations_total",
            "Validation runs by outcome",
            ["result"],
            registry=self.registry
        )

        self._metrics["validation_errors_total"] = Counter(
            "validation_errors_total",
            "Field validation errors by code",
            ["code"],
            registry=self.registry
        )

        self._metrics["filter_compile_duration_seconds"] = Histogram(
            "filter_compile_duration_seconds",
            "Time spent compiling filters into conditions",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_validation(self, error_codes):
        """Record one validation run and its error codes."""
        error_codes = list(error_codes)
        self._metrics["validations_total"].labels(result="invalid" if error_codes else "valid").inc()
        for code in error_codes:
            self._metrics["validation_errors_total"].labels(code=code).inc()

    @contextmanager
    def time_operation(self, metric_name: str):
        """Context manager to time an operation into a histogram."""
        start_time = time.time()
        try:
            yield
        finally:
            self._metrics[metric_name].observe(time.time() - start_time)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get the metrics collector for a service, creating it once."""
    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
