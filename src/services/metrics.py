"""Metrics utilities for the ingestion pipeline."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from .interfaces import MetricsClient

LOG = logging.getLogger(__name__)


class PrometheusMetrics(MetricsClient):
    """Prometheus-backed metrics client."""

    _LATENCY = Histogram(
        "corpus_ingest_latency_seconds",
        "Ingestion stage latency in seconds",
        ["stage", "name"],
    )
    _COUNTERS = Counter(
        "corpus_ingest_events_total",
        "Ingestion event counts",
        ["stage", "name"],
    )
    _DEFAULT_INSTANCE: ClassVar["PrometheusMetrics | None"] = None

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        stage = labels.get("stage", "unknown")
        PrometheusMetrics._LATENCY.labels(stage=stage, name=name).observe(value)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        stage = labels.get("stage", "unknown")
        PrometheusMetrics._COUNTERS.labels(stage=stage, name=name).inc(amount)

    @classmethod
    def default(cls) -> "PrometheusMetrics":
        if cls._DEFAULT_INSTANCE is None:
            cls._DEFAULT_INSTANCE = cls()
        return cls._DEFAULT_INSTANCE

    @classmethod
    def instrument_app(cls, app: Any) -> "PrometheusMetrics":
        """Attach the /metrics endpoint to the FastAPI app."""
        metrics = cls.default()
        if getattr(app.state, "_prometheus_instrumented", False):
            return metrics

        @app.get("/metrics", include_in_schema=False)
        async def _metrics_endpoint() -> Response:  # pragma: no cover - passthrough
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

        app.state._prometheus_instrumented = True
        return metrics


class NullMetrics(MetricsClient):
    """No-op metrics implementation."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        LOG.debug("Metric ignored: %s=%s labels=%s", name, value, labels)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        LOG.debug("Counter ignored: %s+=%s labels=%s", name, amount, labels)


class RecordingMetrics(MetricsClient):
    """In-process metrics sink for tests and the CLI summary."""

    def __init__(self) -> None:
        self.counters: dict[tuple[str, str], int] = {}
        self.latencies: dict[tuple[str, str], list[float]] = {}

    def observe_latency(self, name: str, value: float, **labels: str) -> None:
        self.latencies.setdefault((labels.get("stage", "unknown"), name), []).append(value)

    def increment(self, name: str, amount: int = 1, **labels: str) -> None:
        key = (labels.get("stage", "unknown"), name)
        self.counters[key] = self.counters.get(key, 0) + amount


__all__ = ["PrometheusMetrics", "NullMetrics", "RecordingMetrics"]
