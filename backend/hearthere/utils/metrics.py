"""Prometheus metrics for generation units, backends and caches."""

from prometheus_client import Counter, Histogram

generation_attempts_total = Counter(
    "generation_attempts_total",
    "Generative backend call attempts",
    ["backend", "outcome"],
)

generation_fallbacks_total = Counter(
    "generation_fallbacks_total",
    "Switches from the primary to the fallback generative backend",
    ["primary", "fallback"],
)

cache_lookups_total = Counter(
    "cache_lookups_total",
    "Typed cache lookups by outcome",
    ["cache", "outcome"],
)

unit_latency_ms = Histogram(
    "unit_latency_ms",
    "Script/audio unit latency in milliseconds",
    ["unit_kind", "outcome"],
    buckets=[100, 500, 1000, 2000, 5000, 10000, 20000, 40000, 80000],
)


class PrometheusGenerationMetrics:
    """Prometheus-based metrics recorder passed to invokers and workers."""

    def record_attempt(self, backend: str, outcome: str) -> None:
        """Count one backend attempt."""
        generation_attempts_total.labels(backend=backend, outcome=outcome).inc()

    def record_fallback(self, primary: str, fallback: str) -> None:
        """Count a primary -> fallback switch."""
        generation_fallbacks_total.labels(primary=primary, fallback=fallback).inc()

    def record_cache_lookup(self, cache: str, outcome: str) -> None:
        """Count a cache lookup (hit/miss/error)."""
        cache_lookups_total.labels(cache=cache, outcome=outcome).inc()

    def record_unit(self, unit_kind: str, outcome: str, latency_ms: float) -> None:
        """Record a finished script/audio unit."""
        unit_latency_ms.labels(unit_kind=unit_kind, outcome=outcome).observe(latency_ms)


_metrics = PrometheusGenerationMetrics()


def get_metrics() -> PrometheusGenerationMetrics:
    """Process-wide metrics recorder."""
    return _metrics
