"""Unit tests for prompt builders and summary parsing."""

from backend.hearthere.models.context import LocationContext, SummaryData
from backend.hearthere.models.tour import Tour
from backend.hearthere.orchestration.prompts import (
    build_intro_prompt,
    build_stop_prompt,
    build_summary_prompt,
    parse_summary,
    strip_html,
)

TEL_AVIV = SummaryData(summary="A Mediterranean city.", key_facts=["Founded 1909"])
LEV_HAIR = SummaryData(summary="The historic heart.", key_facts=["Bauhaus buildings"])


def _context(neighborhood: str = "Lev HaIr") -> LocationContext:
    return LocationContext(
        country="Israel",
        city="Tel Aviv",
        neighborhood=neighborhood,
        city_data=TEL_AVIV,
        neighborhood_data=LEV_HAIR,
    )


class TestStopPrompt:
    def test_first_stop(self, sample_tour: Tour) -> None:
        prompt = build_stop_prompt(sample_tour, 0, _context(), "english")

        assert "stop 1 of 3 on a walking tour" in prompt
        assert "This is the FIRST stop" in prompt
        assert "Previous stop" not in prompt
        assert "LAST stop" not in prompt
        assert "Location: Lev HaIr" in prompt
        assert "A Mediterranean city." in prompt
        assert "- Bauhaus buildings" in prompt
        assert "Write the ENTIRE script in ENGLISH." in prompt

    def test_walking_directions_to_next_stop(self, sample_tour: Tour) -> None:
        prompt = build_stop_prompt(sample_tour, 0, _context(), "english")

        assert "Walking Directions to Next Stop (Bialik Street)" in prompt
        assert "Walking time: 8 minutes (640m)" in prompt
        assert "Streets you'll walk on: Dizengoff St, Bialik St" in prompt

    def test_html_stripped_from_turn_by_turn(self, sample_tour: Tour) -> None:
        prompt = build_stop_prompt(sample_tour, 1, _context(), "english")

        assert "Previous stop: Dizengoff Square" in prompt
        assert "1. Head south on Allenby (300 m)" in prompt
        assert "2. Turn left (50 m)" in prompt
        assert "<b>" not in prompt

    def test_last_stop(self, sample_tour: Tour) -> None:
        prompt = build_stop_prompt(sample_tour, 2, None, "english")

        assert "stop 3 of 3" in prompt
        assert "This is the LAST stop" in prompt
        assert "Walking Directions" not in prompt
        assert "Location: the area" in prompt

    def test_single_stop_is_first_and_last(self, sample_tour: Tour) -> None:
        tour = sample_tour.model_copy(update={"stops": sample_tour.stops[:1]})

        prompt = build_stop_prompt(tour, 0, None, "english")

        assert "FIRST stop" in prompt
        assert "LAST stop" in prompt

    def test_hebrew(self, sample_tour: Tour) -> None:
        prompt = build_stop_prompt(sample_tour, 0, None, "Hebrew")

        assert "HEBREW" in prompt


class TestIntroPrompt:
    def test_lists_each_area_once(self, sample_tour: Tour) -> None:
        summaries = {
            "Israel|Tel Aviv|Lev HaIr": _context("Lev HaIr"),
            "Israel|Tel Aviv|Florentin": _context("Florentin"),
        }

        prompt = build_intro_prompt(sample_tour, summaries, "english")

        assert prompt.count("A Mediterranean city.") == 1
        assert "Cities on this tour" in prompt
        assert "Lev HaIr:" in prompt
        assert "Florentin:" in prompt
        assert "Number of stops: 3" in prompt
        assert "Estimated duration: 60 minutes" in prompt

    def test_no_context(self, sample_tour: Tour) -> None:
        prompt = build_intro_prompt(sample_tour, {}, "english")

        assert "No additional context available" in prompt

    def test_includes_neighborhood_intro(self, sample_tour: Tour) -> None:
        area = LocationContext(city="Tel Aviv", intro_script="Welcome to the White City.")

        prompt = build_intro_prompt(sample_tour, {}, "english", area)

        assert "Welcome to the White City." in prompt


def test_summary_prompt_scopes_neighborhood() -> None:
    assert "about Florentin, Tel Aviv" in build_summary_prompt("neighborhood", "Florentin", "Tel Aviv")
    assert "about Tel Aviv." in build_summary_prompt("city", "Tel Aviv")


def test_strip_html() -> None:
    assert strip_html('Turn <b>right</b> onto <span class="x">Herzl</span>') == "Turn right onto Herzl"


class TestParseSummary:
    def test_json_in_prose(self) -> None:
        text = 'Sure! ```json\n{"summary": "Old port.", "keyFacts": ["a", 2]}\n```'

        assert parse_summary(text) == SummaryData(summary="Old port.", key_facts=["a", "2"])

    def test_unparseable_is_empty(self) -> None:
        assert parse_summary("no json here").is_empty
        assert parse_summary("{not json}").is_empty
        assert parse_summary("").is_empty

    def test_missing_facts(self) -> None:
        assert parse_summary('{"summary": "Only a summary"}') == SummaryData(summary="Only a summary")
