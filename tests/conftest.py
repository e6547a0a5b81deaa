"""Shared pytest fixtures for all test suites."""

from collections.abc import Callable

import pytest

from backend.hearthere.cache.documents import TourDocumentStore
from backend.hearthere.cache.inmemory import InMemoryCacheStore
from backend.hearthere.cache.places import PlaceCache
from backend.hearthere.cache.summaries import SummaryCache
from backend.hearthere.geo.geocoder import GeocodeResult, StubReverseGeocoder
from backend.hearthere.llm.client import DeterministicStubGenerator
from backend.hearthere.llm.invoker import RetryFallbackInvoker
from backend.hearthere.models.tour import DirectionStep, Stop, Tour, WalkingDirections
from backend.hearthere.orchestration.cancellation import InMemoryCancellationSignal
from backend.hearthere.orchestration.deps import AudioguideDeps
from backend.hearthere.orchestration.engine import Checkpointer
from backend.hearthere.speech.blobs import InMemoryBlobStore
from backend.hearthere.speech.client import StubSpeechSynthesizer


class RecordingGenerator(DeterministicStubGenerator):
    """Stub generator that records prompts and can fail on demand.

    Args:
        name: Backend name reported as model_used
        failures: Exceptions raised by the first calls, in order
        fail_when: Predicate on the prompt returning an exception to raise, or None
    """

    def __init__(
        self,
        name: str = "primary",
        failures: list[Exception] | None = None,
        fail_when: Callable[[str], Exception | None] | None = None,
    ) -> None:
        super().__init__(name)
        self.prompts: list[str] = []
        self.failures = list(failures or [])
        self.fail_when = fail_when

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail_when is not None:
            exc = self.fail_when(prompt)
            if exc is not None:
                raise exc
        if self.failures:
            raise self.failures.pop(0)
        return await super().generate(prompt)

    def summary_prompts(self) -> list[str]:
        return [p for p in self.prompts if "Respond as JSON" in p]

    def script_prompts(self) -> list[str]:
        return [p for p in self.prompts if "Respond as JSON" not in p]


class RecordingSynthesizer(StubSpeechSynthesizer):
    """Stub synthesizer that records requests and can fail on demand.

    Args:
        name: Backend name reported by the invoker
        failures: Exceptions raised by the first calls, in order
    """

    def __init__(self, name: str = "stub-tts", failures: list[Exception] | None = None) -> None:
        self.name = name
        self.requests: list[tuple[str, str]] = []
        self.failures = list(failures or [])

    async def synthesize(self, text: str, voice: str) -> bytes:
        self.requests.append((text, voice))
        if self.failures:
            raise self.failures.pop(0)
        return await super().synthesize(text, voice)


@pytest.fixture
def store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def documents(store: InMemoryCacheStore) -> TourDocumentStore:
    return TourDocumentStore(store)


@pytest.fixture
def cancellation() -> InMemoryCancellationSignal:
    return InMemoryCancellationSignal()


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by invokers built through make_deps."""
    return []


@pytest.fixture
def sample_tour() -> Tour:
    """Three-stop tour with coordinates but no resolved locations."""
    return Tour(
        id="tour_abc",
        title="Bauhaus and Boulevards",
        theme="architecture",
        abstract="A stroll through the White City.",
        estimated_total_minutes=60,
        stops=[
            Stop(
                id="place_0",
                name="Dizengoff Square",
                latitude=32.0778,
                longitude=34.7740,
                dwell_minutes=10,
            ),
            Stop(
                id="place_1",
                name="Bialik Street",
                latitude=32.0733,
                longitude=34.7710,
                dwell_minutes=10,
                walk_minutes_from_previous=8,
                distance_meters=640.4,
                street_names=["Dizengoff St", "Bialik St"],
            ),
            Stop(
                id="place_2",
                name="Rothschild Boulevard",
                latitude=32.0636,
                longitude=34.7740,
                dwell_minutes=15,
                walk_minutes_from_previous=12,
                walking_directions=WalkingDirections(
                    steps=[
                        DirectionStep(instruction="Head <b>south</b> on Allenby", distance="300 m"),
                        DirectionStep(instruction="Turn <b>left</b>", distance="50 m"),
                    ]
                ),
            ),
        ],
    )


@pytest.fixture
def geocoder() -> StubReverseGeocoder:
    return StubReverseGeocoder(
        default=GeocodeResult(country="Israel", city="Tel Aviv", neighborhood="Lev HaIr")
    )


@pytest.fixture
def make_deps(
    store: InMemoryCacheStore,
    documents: TourDocumentStore,
    cancellation: InMemoryCancellationSignal,
    geocoder: StubReverseGeocoder,
    sleeps: list[float],
) -> Callable[..., AudioguideDeps]:
    """Factory for pipeline deps wired to stubs and the in-memory store."""

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def _make(
        primary: RecordingGenerator | None = None,
        fallback: RecordingGenerator | None = None,
        synthesizer: StubSpeechSynthesizer | None = None,
        fallback_synthesizer: StubSpeechSynthesizer | None = None,
        blobs: InMemoryBlobStore | None = None,
        checkpointer: Checkpointer | None = None,
    ) -> AudioguideDeps:
        return AudioguideDeps(
            documents=documents,
            summaries=SummaryCache(store),
            places=PlaceCache(store),
            invoker=RetryFallbackInvoker(
                primary or RecordingGenerator("primary"),
                fallback or RecordingGenerator("fallback"),
                sleep_fn=fake_sleep,
            ),
            speech=RetryFallbackInvoker(
                synthesizer or RecordingSynthesizer(),
                fallback_synthesizer,
                sleep_fn=fake_sleep,
            ),
            blobs=blobs or InMemoryBlobStore(),
            geocoder=geocoder,
            cancellation=cancellation,
            checkpointer=checkpointer,
            poll_interval=0.01,
        )

    return _make


@pytest.fixture
def make_generator() -> type[RecordingGenerator]:
    """RecordingGenerator class, for tests that script backend failures."""
    return RecordingGenerator


@pytest.fixture
def make_synthesizer() -> type[RecordingSynthesizer]:
    return RecordingSynthesizer
