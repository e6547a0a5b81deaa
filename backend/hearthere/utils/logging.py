"""Structured logging for generation units."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredUnitLogger:
    """Structured logger for script/audio unit execution."""

    def log_unit(
        self,
        tour_id: str,
        unit_kind: str,
        index: int,
        outcome: str,
        latency_ms: float,
        model_used: str | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log one finished unit with structured data."""
        log_data: dict[str, Any] = {
            "tour_id": tour_id,
            "unit": unit_kind,
            "index": index,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if model_used:
            log_data["model_used"] = model_used
        if error_reason:
            log_data["error_reason"] = error_reason

        label = "intro" if index < 0 else f"stop {index}"
        log_msg = f"Unit {unit_kind} ({label}) - {outcome}"

        if outcome == "complete":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
