"""Area context models - per-location summaries fed into script prompts."""

from pydantic import Field

from backend.hearthere.models.common import CamelModel, location_key


class SummaryData(CamelModel):
    """Generated summary and key facts for a city or neighborhood."""

    summary: str | None = None
    key_facts: list[str] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.summary and not self.key_facts


class LocationContext(CamelModel):
    """Area context for one (country, city, neighborhood) triple."""

    country: str | None = None
    city: str | None = None
    neighborhood: str | None = None
    city_data: SummaryData = Field(default_factory=SummaryData)
    neighborhood_data: SummaryData = Field(default_factory=SummaryData)
    # Neighborhood intro narration played before the tour intro, if any
    intro_script: str | None = None

    @property
    def key(self) -> str:
        return location_key(self.country, self.city, self.neighborhood)


# Stop index -> location key (lookup only, does not own the context)
StopLocationMap = dict[int, str]
