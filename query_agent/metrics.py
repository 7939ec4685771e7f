"""
Prometheus metrics for routing and model calls.

Each `PrometheusMetrics` owns its own CollectorRegistry so several agents
(and test cases) can live in one process without duplicate-series errors.
Pass `registry=prometheus_client.REGISTRY` to expose them on the default
endpoint.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram

LATENCY_BUCKETS_MS = (50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000)


class PrometheusMetrics:
    """IMetricsSink backed by prometheus_client counters and histograms."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.route_total = Counter(
            "agent_route_total",
            "Routing decisions by route and strategy",
            labelnames=("route", "strategy"),
            registry=self.registry,
        )
        self.model_latency_ms = Histogram(
            "model_latency_ms",
            "Model call latency in milliseconds",
            labelnames=("purpose", "provider", "model"),
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self.model_errors_total = Counter(
            "model_errors_total",
            "Failed model call attempts",
            labelnames=("purpose", "provider"),
            registry=self.registry,
        )
        self.fallback_total = Counter(
            "fallback_total",
            "Calls answered by a candidate other than the primary",
            labelnames=("from", "to", "reason"),
            registry=self.registry,
        )

    def record_route(self, route: str, strategy: str) -> None:
        self.route_total.labels(route=route, strategy=strategy).inc()

    def record_model_latency(self, purpose: str, provider: str, model: str, elapsed_ms: float) -> None:
        self.model_latency_ms.labels(purpose=purpose, provider=provider, model=model).observe(elapsed_ms)

    def record_model_error(self, purpose: str, provider: str) -> None:
        self.model_errors_total.labels(purpose=purpose, provider=provider).inc()

    def record_fallback(self, from_provider: str, to_provider: str, reason: str) -> None:
        # "from" is a keyword, so labels are passed positionally
        self.fallback_total.labels(from_provider, to_provider, reason).inc()

    def sample(self, name: str, **labels) -> float:
        """Current value of a sample, 0.0 when it has not been recorded yet."""
        value = self.registry.get_sample_value(name, labels)
        return 0.0 if value is None else value


class NullMetrics:
    """Metrics sink that records nothing."""

    def record_route(self, route: str, strategy: str) -> None:
        pass

    def record_model_latency(self, purpose: str, provider: str, model: str, elapsed_ms: float) -> None:
        pass

    def record_model_error(self, purpose: str, provider: str) -> None:
        pass

    def record_fallback(self, from_provider: str, to_provider: str, reason: str) -> None:
        pass
