"""Pipeline error kinds.

Each error carries a short ``kind`` string that is persisted alongside the
error message when a tour document is marked failed.
"""


class PipelineError(Exception):
    """Base class for generation pipeline errors."""

    kind = "internal"


class TourValidationError(PipelineError):
    """Required pipeline input is missing or malformed."""

    kind = "validation"


class BackendApiError(PipelineError):
    """External generative backend failed after retries and fallback."""

    kind = "api"


class GenerationCancelledError(PipelineError):
    """Session cancellation was detected; the whole run aborts."""

    kind = "cancelled"

    def __init__(self, message: str = "CANCELLED") -> None:
        super().__init__(message)


class CacheUnavailableError(PipelineError):
    """Cache backend is unreachable. Callers degrade to a cache miss."""

    kind = "cache_unavailable"


class UnitGenerationError(PipelineError):
    """A single script or audio unit failed.

    Recorded in place on the unit entry; never propagated past the worker.
    """

    kind = "partial"

    def __init__(self, unit: str, index: int, cause: BaseException) -> None:
        self.unit = unit
        self.index = index
        self.cause = cause
        super().__init__(f"{unit}[{index}] failed: {cause}")


def error_kind(exc: BaseException) -> str:
    """Return the persisted kind for any exception."""
    if isinstance(exc, PipelineError):
        return exc.kind
    return PipelineError.kind
