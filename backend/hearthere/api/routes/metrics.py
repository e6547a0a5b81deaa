"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - generation_attempts_total{backend, outcome}
    - generation_fallbacks_total{primary, fallback}
    - cache_lookups_total{cache, outcome}
    - unit_latency_ms{unit_kind, outcome}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
