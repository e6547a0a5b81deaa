"""Session model - identifies one in-flight generation run."""

from pydantic import BaseModel, Field

HEBREW = "hebrew"
DEFAULT_LANGUAGE = "english"
DEFAULT_VOICES = {
    HEBREW: "he-IL-Standard-D",
}
DEFAULT_VOICE = "en-GB-Wavenet-B"


def default_voice_for(language: str) -> str:
    """Default TTS voice for a language."""
    return DEFAULT_VOICES.get(language.lower(), DEFAULT_VOICE)


class Session(BaseModel):
    """Generation session: which tour, in which language and voice."""

    session_id: str = Field(..., min_length=1)
    tour_id: str = Field(..., min_length=1)
    language: str = DEFAULT_LANGUAGE
    voice: str | None = None

    @property
    def resolved_voice(self) -> str:
        return self.voice or default_voice_for(self.language)

    @property
    def thread_id(self) -> str:
        """Checkpoint thread identifier for this run."""
        return f"{self.session_id}_audioguide_{self.tour_id}"
