"""Prompt builders for narration scripts and area summaries."""

import json
import logging
import re
from typing import Any

from backend.hearthere.models.context import LocationContext, SummaryData
from backend.hearthere.models.session import HEBREW
from backend.hearthere.models.tour import Stop, Tour

logger = logging.getLogger(__name__)

_HTML_TAG = re.compile(r"<[^>]*>")


def strip_html(text: str) -> str:
    return _HTML_TAG.sub("", text)


def language_instruction(language: str) -> str:
    if language.lower() == HEBREW:
        return "Write the ENTIRE script in HEBREW (עברית). Use natural, conversational Hebrew."
    return "Write the ENTIRE script in ENGLISH."


def _facts(facts: list[str] | None) -> str:
    return "\n".join(f"- {fact}" for fact in facts or [])


def _tour_area_text(location_summaries: dict[str, LocationContext]) -> str:
    """Context block listing every city and neighborhood on the tour, once each."""
    cities: dict[str, SummaryData] = {}
    neighborhoods: dict[str, SummaryData] = {}
    for ctx in location_summaries.values():
        if ctx.city and not ctx.city_data.is_empty:
            cities.setdefault(ctx.city, ctx.city_data)
        if ctx.neighborhood and not ctx.neighborhood_data.is_empty:
            neighborhoods.setdefault(ctx.neighborhood, ctx.neighborhood_data)

    text = ""
    for heading, entries in (
        ("Cities on this tour", cities),
        ("Neighborhoods on this tour", neighborhoods),
    ):
        if not entries:
            continue
        text += f"\n{heading}:\n"
        for name, data in entries.items():
            text += f"\n{name}:\n{data.summary or ''}"
            if data.key_facts:
                text += f"\nKey Facts:\n{_facts(data.key_facts)}"
            text += "\n"
    return text


def build_intro_prompt(
    tour: Tour,
    location_summaries: dict[str, LocationContext],
    language: str,
    area_context: LocationContext | None = None,
) -> str:
    """Prompt for the tour introduction."""
    area_text = _tour_area_text(location_summaries)
    if not area_text.strip():
        logger.warning("No location summaries available for intro of tour %s", tour.id)
        area_text = "\nNo additional context available"

    intro_section = ""
    if area_context and area_context.intro_script:
        intro_section = (
            "\nNeighbourhood intro script, this was played just before what you need "
            f"to produce:\n{area_context.intro_script}\n"
        )

    return f"""You are a professional tour guide creating an engaging audio introduction for a walking tour.

Tour Details:
- Title: {tour.title}
- Theme: {tour.theme}
- Abstract: {tour.abstract}
- Number of stops: {len(tour.stops)}
- Estimated duration: {tour.estimated_total_minutes} minutes

Context about the areas you'll visit:{area_text}

Create a warm, engaging 2 minute tour introduction script that:
1. Introduces the tour theme and what makes it special
2. Gives a brief overview of what they'll experience and the areas they'll explore
3. Does not repeat the neighborhood introduction and reads as its natural continuation
4. Sets an enthusiastic, friendly tone
5. Mentions the number of stops and approximate duration
{intro_section}
{language_instruction(language)}
Write in a natural, conversational style as if speaking directly to the visitor.
Do NOT include stage directions or speaker labels - just the script text."""


def _walking_text(next_stop: Stop) -> str:
    walk = next_stop.walk_minutes_from_previous
    distance = f" ({round(next_stop.distance_meters)}m)" if next_stop.distance_meters else ""
    text = (
        f"\n\nWalking Directions to Next Stop ({next_stop.name}):\n"
        f"- Walking time: {walk} minute{'' if walk == 1 else 's'}{distance}"
    )
    if next_stop.street_names:
        text += f"\n- Streets you'll walk on: {', '.join(next_stop.street_names)}"
    directions = next_stop.walking_directions
    if directions and directions.steps:
        steps = "\n".join(
            f"  {i + 1}. {strip_html(step.instruction)} ({step.distance})"
            for i, step in enumerate(directions.steps)
        )
        text += f"\n- Turn-by-turn directions:\n{steps}"
    return text


def _stop_area_text(ctx: LocationContext | None) -> str:
    if ctx is None:
        return ""
    text = ""
    if ctx.city_data.summary:
        text += f"\nCity Context ({ctx.city}):\n{ctx.city_data.summary}"
    if ctx.city_data.key_facts:
        text += f"\n\nKey Facts about {ctx.city}:\n{_facts(ctx.city_data.key_facts)}"
    if ctx.neighborhood_data.summary:
        text += f"\n\nNeighborhood Context ({ctx.neighborhood}):\n{ctx.neighborhood_data.summary}"
    if ctx.neighborhood_data.key_facts:
        text += (
            f"\n\nKey Facts about {ctx.neighborhood}:\n{_facts(ctx.neighborhood_data.key_facts)}"
        )
    return text


def build_stop_prompt(
    tour: Tour,
    index: int,
    context: LocationContext | None,
    language: str,
) -> str:
    """Prompt for one stop, including directions to the next stop."""
    stop = tour.stops[index]
    total = len(tour.stops)
    is_first = index == 0
    is_last = index == total - 1
    previous_stop = tour.stops[index - 1] if index > 0 else None
    next_stop = tour.stops[index + 1] if not is_last else None

    area_text = _stop_area_text(context)
    if not area_text.strip():
        logger.warning("Empty area context for stop %r of tour %s", stop.name, tour.id)

    location = "the area"
    if context is not None:
        location = context.neighborhood or context.city or location

    details = [f"- Name: {stop.name}", f"- Location: {location}", f"- Tour theme: {tour.theme}"]
    if is_first:
        details.append("- This is the FIRST stop")
    elif previous_stop is not None:
        details.append(f"- Previous stop: {previous_stop.name}")
    if is_last:
        details.append("- This is the LAST stop - include closing remarks")

    opening = "Welcomes them to the first stop" if is_first else f"Introduces stop {index + 1}"
    if is_last:
        closing = "Concludes the tour with warm closing remarks and thanks them for joining"
        guidance = ""
        farewell = "End with a memorable closing that thanks them and wishes them well."
    else:
        closing = (
            "Provides clear walking directions to the next stop, mentioning the street names "
            "and any interesting context about those streets"
        )
        guidance = (
            "IMPORTANT: End the script by guiding them to the next stop. Use the walking "
            "directions provided above to give them clear, friendly guidance. If the streets "
            "have interesting historical or cultural significance, mention it!"
        )
        farewell = ""

    walking = _walking_text(next_stop) if next_stop is not None else ""
    detail_text = "\n".join(details)

    return f"""You are a professional tour guide creating an engaging audio script for stop {index + 1} of {total} on a walking tour.

Stop Details:
{detail_text}

Context about the area:{area_text}
{walking}

Create an engaging 1-5 minute audio script that:
1. {opening}
2. Shares fascinating historical facts, stories, or cultural significance about {stop.name}
3. Points out interesting architectural or visual details they should notice
4. Includes surprising or little-known facts that tourists would love
5. {closing}
6. Scales its length with the richness of the stop

{guidance}

{language_instruction(language)}
Write in a natural, conversational, enthusiastic style as if you're walking with them.
Do NOT include stage directions or speaker labels - just the script text.
Keep it between 500-750 words.
{farewell}"""


def build_summary_prompt(entity_type: str, name: str, city: str | None = None) -> str:
    """Prompt asking for a JSON summary of a city or neighborhood."""
    subject = f"{name}, {city}" if entity_type == "neighborhood" and city else name
    return f"""Generate a brief summary and key facts about {subject}. Respond as JSON:
{{
  "summary": "2-3 sentence overview of the {entity_type}",
  "keyFacts": ["fact 1", "fact 2", "fact 3", "fact 4", "fact 5"]
}}"""


def extract_json_object(text: str) -> str | None:
    """Substring from the first "{" to the last "}", if any."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def parse_summary(text: str) -> SummaryData:
    """Parse generated summary text; unparseable output yields empty data."""
    raw = extract_json_object(text)
    if raw is None:
        return SummaryData()
    try:
        parsed: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Summary response was not valid JSON: %s", e)
        return SummaryData()
    if not isinstance(parsed, dict):
        return SummaryData()

    facts = parsed.get("keyFacts")
    return SummaryData(
        summary=parsed.get("summary") or None,
        key_facts=[str(f) for f in facts] if isinstance(facts, list) else None,
    )
