"""Unit tests for the retry/fallback invoker."""

import httpx
import pytest

from backend.hearthere.errors import BackendApiError, GenerationCancelledError
from backend.hearthere.llm.invoker import (
    EmptyResponseError,
    RetryFallbackInvoker,
    generate_text,
    is_api_error,
)


def _http_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class _Recorder:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


class TestIsApiError:
    @pytest.mark.parametrize(
        "exc",
        [
            _http_error(429),
            _http_error(503),
            RuntimeError("Rate limit reached for gpt-4o"),
            RuntimeError("RESOURCE_EXHAUSTED: quota"),
            RuntimeError("403 Forbidden"),
        ],
    )
    def test_api_errors(self, exc: Exception) -> None:
        assert is_api_error(exc)

    @pytest.mark.parametrize(
        "exc",
        [ValueError("bad json"), TimeoutError("read timed out"), EmptyResponseError()],
    )
    def test_non_api_errors(self, exc: Exception) -> None:
        assert not is_api_error(exc)

    def test_status_attribute(self) -> None:
        exc = RuntimeError("boom")
        exc.status_code = 500
        assert is_api_error(exc)


class TestRetryFallbackInvoker:
    @pytest.mark.asyncio
    async def test_primary_success(self, make_generator) -> None:
        recorder = _Recorder()
        invoker = RetryFallbackInvoker(
            make_generator("primary"), make_generator("fallback"), sleep_fn=recorder.sleep
        )

        result = await generate_text(invoker, "hello")

        assert result.model_used == "primary"
        assert result.value
        assert recorder.sleeps == []

    @pytest.mark.asyncio
    async def test_api_error_switches_to_fallback_without_backoff(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[_http_error(429)])
        fallback = make_generator("fallback")
        invoker = RetryFallbackInvoker(primary, fallback, sleep_fn=recorder.sleep)

        result = await generate_text(invoker, "hello")

        assert result.model_used == "fallback"
        assert len(primary.prompts) == 1
        assert len(fallback.prompts) == 1
        assert recorder.sleeps == []

    @pytest.mark.asyncio
    async def test_fallback_switch_happens_once(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[_http_error(429)])
        fallback = make_generator("fallback", failures=[_http_error(429), _http_error(429)])
        invoker = RetryFallbackInvoker(primary, fallback, sleep_fn=recorder.sleep)

        result = await generate_text(invoker, "hello")

        assert result.model_used == "fallback"
        assert len(primary.prompts) == 1
        assert recorder.sleeps == [1, 2]

    @pytest.mark.asyncio
    async def test_non_api_errors_back_off_then_give_up(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[ValueError("x")] * 3)
        fallback = make_generator("fallback")
        invoker = RetryFallbackInvoker(primary, fallback, sleep_fn=recorder.sleep)

        with pytest.raises(BackendApiError) as exc_info:
            await generate_text(invoker, "hello")

        assert "primary failed after 3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert recorder.sleeps == [1, 2]
        assert fallback.prompts == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[TimeoutError("slow")])
        invoker = RetryFallbackInvoker(primary, sleep_fn=recorder.sleep)

        result = await generate_text(invoker, "hello")

        assert result.model_used == "primary"
        assert recorder.sleeps == [1]

    @pytest.mark.asyncio
    async def test_empty_response_is_retried(self, make_generator) -> None:
        recorder = _Recorder()
        invoker = RetryFallbackInvoker(make_generator("primary"), sleep_fn=recorder.sleep)
        calls = []

        async def blank(generator) -> str:
            calls.append(generator.name)
            raise EmptyResponseError()

        with pytest.raises(BackendApiError):
            await invoker.invoke(blank)

        assert calls == ["primary"] * 3

    @pytest.mark.asyncio
    async def test_whitespace_text_counts_as_empty(self) -> None:
        class Blank:
            name = "blank"

            async def generate(self, prompt: str) -> str:
                return "   \n"

        recorder = _Recorder()
        invoker = RetryFallbackInvoker(Blank(), max_retries=1, sleep_fn=recorder.sleep)

        with pytest.raises(BackendApiError) as exc_info:
            await generate_text(invoker, "hello")

        assert isinstance(exc_info.value.__cause__, EmptyResponseError)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[GenerationCancelledError()])
        invoker = RetryFallbackInvoker(primary, make_generator("fallback"), sleep_fn=recorder.sleep)

        with pytest.raises(GenerationCancelledError):
            await generate_text(invoker, "hello")

        assert len(primary.prompts) == 1
        assert recorder.sleeps == []

    @pytest.mark.asyncio
    async def test_guard_runs_before_every_attempt(self, make_generator) -> None:
        recorder = _Recorder()
        primary = make_generator("primary", failures=[ValueError("x")])
        invoker = RetryFallbackInvoker(primary, sleep_fn=recorder.sleep)
        guard_calls = []

        async def guard() -> None:
            guard_calls.append(len(guard_calls))

        await generate_text(invoker, "hello", guard=guard)

        assert guard_calls == [0, 1]

    @pytest.mark.asyncio
    async def test_guard_abort_stops_before_call(self, make_generator) -> None:
        primary = make_generator("primary")
        invoker = RetryFallbackInvoker(primary)

        async def guard() -> None:
            raise GenerationCancelledError()

        with pytest.raises(GenerationCancelledError):
            await generate_text(invoker, "hello", guard=guard)

        assert primary.prompts == []

    def test_rejects_zero_retries(self, make_generator) -> None:
        with pytest.raises(ValueError):
            RetryFallbackInvoker(make_generator("primary"), max_retries=0)
