"""Speech synthesis backends.

The real backend calls the Google Cloud Text-to-Speech REST API over httpx;
voice names (e.g. "en-GB-Wavenet-B") are Google voice identifiers.
"""

import base64
import hashlib
import logging
from typing import Protocol

import httpx

from backend.hearthere.config import Settings, get_settings

logger = logging.getLogger(__name__)

TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
MAX_TTS_BYTES = 4998
TRUNCATION_MARKER = "..."


def truncate_for_tts(
    text: str, max_bytes: int = MAX_TTS_BYTES, marker: str = TRUNCATION_MARKER
) -> str:
    """Trim text so its UTF-8 encoding fits the synthesis request limit.

    Drops the last 10% of characters until the text plus marker fits, then
    appends the marker. Text already within the limit is returned unchanged.

    Raises:
        ValueError: max_bytes leaves no room for text next to the marker
    """
    original_bytes = len(text.encode("utf-8"))
    if original_bytes <= max_bytes:
        return text

    budget = max_bytes - len(marker.encode("utf-8"))
    if budget <= 0:
        raise ValueError(
            f"TTS byte limit {max_bytes} does not fit the truncation marker {marker!r}"
        )
    trimmed = text
    while trimmed and len(trimmed.encode("utf-8")) > budget:
        trimmed = trimmed[: int(len(trimmed) * 0.9)]

    result = trimmed.rstrip() + marker
    logger.warning(
        "Script exceeds TTS limit: %d bytes trimmed to %d (limit %d)",
        original_bytes,
        len(result.encode("utf-8")),
        max_bytes,
    )
    return result


def language_code_for_voice(voice: str) -> str:
    """Derive the BCP-47 language code from a voice name."""
    if voice.startswith("he-"):
        return "he-IL"
    if voice.startswith("en-GB-"):
        return "en-GB"
    return "en-US"


class SpeechSynthesizer(Protocol):
    """Protocol for speech synthesis backends."""

    @property
    def name(self) -> str: ...

    async def synthesize(self, text: str, voice: str) -> bytes:
        """Synthesize MP3 audio for text in the given voice."""
        ...


class StubSpeechSynthesizer:
    """Deterministic synthesizer for tests and local runs."""

    name = "stub-tts"

    async def synthesize(self, text: str, voice: str) -> bytes:
        digest = hashlib.sha256(f"{voice}:{text}".encode()).digest()
        return b"ID3" + digest


class GoogleSpeechSynthesizer:
    """Google Cloud Text-to-Speech over REST."""

    name = "google-tts"

    def __init__(
        self,
        api_key: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def synthesize(self, text: str, voice: str) -> bytes:
        """Synthesize MP3 audio.

        Raises:
            httpx.HTTPStatusError: Non-2xx response (classified as an API error)
            ValueError: Response carried no audio content
        """
        body = {
            "input": {"text": text},
            "voice": {"languageCode": language_code_for_voice(voice), "name": voice},
            "audioConfig": {"audioEncoding": "MP3", "speakingRate": 1.0, "pitch": 0.0},
        }

        if self._client is not None:
            response = await self._post(self._client, body)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await self._post(client, body)

        audio = response.json().get("audioContent")
        if not audio:
            raise ValueError("No audio content in TTS response")
        return base64.b64decode(audio)

    async def _post(self, client: httpx.AsyncClient, body: dict) -> httpx.Response:
        response = await client.post(TTS_URL, params={"key": self.api_key}, json=body)
        response.raise_for_status()
        return response


def get_speech_synthesizer(settings: Settings | None = None) -> SpeechSynthesizer:
    """Real synthesizer if a TTS key is configured, stub otherwise."""
    settings = settings or get_settings()
    if settings.google_tts_api_key:
        return GoogleSpeechSynthesizer(
            settings.google_tts_api_key, timeout_seconds=settings.tts_timeout_seconds
        )
    logger.warning("No TTS API key configured, using stub speech synthesizer")
    return StubSpeechSynthesizer()
