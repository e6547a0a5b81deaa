"""Retry/fallback invoker for external generative backends.

Wraps one backend call with:
- Bounded retries (default 3) with exponential backoff (1s, 2s, ...)
- One-time switch to a fallback backend on the first API-level error
  (rate limit, quota, permission, 4xx/5xx); the switch does not use a retry slot
- Cancellation passthrough (never retried)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

import httpx
import openai

from backend.hearthere.errors import BackendApiError, GenerationCancelledError
from backend.hearthere.llm.client import TextGenerator
from backend.hearthere.utils.metrics import PrometheusGenerationMetrics, get_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")
B = TypeVar("B", bound="NamedBackend")

API_ERROR_MARKERS = (
    "429",
    "403",
    "rate limit",
    "quota exceeded",
    "resource_exhausted",
    "permission_denied",
    "forbidden",
    "unauthorized",
)


class NamedBackend(Protocol):
    @property
    def name(self) -> str: ...


class EmptyResponseError(Exception):
    """Backend returned no content."""

    def __init__(self) -> None:
        super().__init__("Empty response from model")


@dataclass
class GenerationResult(Generic[T]):
    """Backend output plus the identity of the backend that produced it."""

    value: T
    model_used: str


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_api_error(exc: BaseException) -> bool:
    """Classify an exception as a service-side API error eligible for fallback."""
    status = _status_code(exc)
    if status is not None and status >= 400:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in API_ERROR_MARKERS)


class RetryFallbackInvoker(Generic[B]):
    """Runs a backend call with retries and a single fallback switch."""

    def __init__(
        self,
        primary: B,
        fallback: B | None = None,
        *,
        max_retries: int = 3,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        metrics: PrometheusGenerationMetrics | None = None,
    ) -> None:
        """Initialize invoker.

        Args:
            primary: Backend tried first
            fallback: Backend switched to on the first API-level error
            max_retries: Attempts that may fail before giving up
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            metrics: Metrics recorder (defaults to process-wide Prometheus metrics)
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.primary = primary
        self.fallback = fallback
        self.max_retries = max_retries
        self._sleep = sleep_fn or asyncio.sleep
        self._metrics = metrics or get_metrics()

    async def invoke(
        self,
        call: Callable[[B], Awaitable[T]],
        *,
        guard: Callable[[], Awaitable[None]] | None = None,
    ) -> GenerationResult[T]:
        """Invoke call(backend) until it succeeds or retries are exhausted.

        Args:
            call: Async function performing the backend request
            guard: Awaited before every attempt; raises to abort (e.g. cancellation)

        Returns:
            GenerationResult with the value and the backend name that produced it

        Raises:
            GenerationCancelledError: Raised by guard or call; never retried
            BackendApiError: All attempts failed
        """
        backend = self.primary
        use_fallback = False
        attempt = 0

        while attempt < self.max_retries:
            if guard is not None:
                await guard()

            started = time.monotonic()
            try:
                value = await call(backend)
                self._metrics.record_attempt(backend.name, "success")
                logger.debug(
                    "%s succeeded in %.0fms", backend.name, (time.monotonic() - started) * 1000
                )
                return GenerationResult(value=value, model_used=backend.name)

            except GenerationCancelledError:
                self._metrics.record_attempt(backend.name, "cancelled")
                raise

            except Exception as e:
                api_error = is_api_error(e)
                self._metrics.record_attempt(backend.name, "api_error" if api_error else "error")
                logger.warning(
                    "Generation with %s failed (attempt %d): %s", backend.name, attempt + 1, e
                )

                if api_error and not use_fallback and self.fallback is not None:
                    logger.warning(
                        "API error (status: %s), falling back from %s to %s",
                        _status_code(e) or "unknown",
                        self.primary.name,
                        self.fallback.name,
                    )
                    self._metrics.record_fallback(self.primary.name, self.fallback.name)
                    backend = self.fallback
                    use_fallback = True
                    continue

                attempt += 1
                if attempt >= self.max_retries:
                    raise BackendApiError(
                        f"{backend.name} failed after {attempt} attempts: {e}"
                    ) from e

                delay = 2 ** (attempt - 1)
                logger.info("Waiting %ss before retry", delay)
                await self._sleep(delay)

        raise BackendApiError("Failed to generate content after retries")


async def generate_text(
    invoker: RetryFallbackInvoker[TextGenerator],
    prompt: str,
    *,
    guard: Callable[[], Awaitable[None]] | None = None,
) -> GenerationResult[str]:
    """Generate non-empty text through the invoker."""

    async def _call(generator: TextGenerator) -> str:
        text = await generator.generate(prompt)
        if not text or not text.strip():
            raise EmptyResponseError()
        return text

    return await invoker.invoke(_call, guard=guard)
