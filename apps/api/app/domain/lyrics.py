"""Lyric sectioning and lightweight narrative analysis for segment prompts."""

from __future__ import annotations

from dataclasses import dataclass
import math
import re
from typing import Literal

SectionType = Literal["verse", "chorus", "bridge", "intro", "outro", "section"]

_SECTION_MARKER = re.compile(r"\[(?:verse|chorus|bridge|intro|outro|hook|pre-chorus|interlude)\s*\d*\]", re.IGNORECASE)
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

_STORY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("natural elements", re.compile(r"\b(sun|moon|stars?|sky|ocean|sea|waves?|rain|storm|fire|wind|mountain|river|forest|flower|tree)\b")),
    ("dynamic movement", re.compile(r"\b(run|fly|fall|rise|dance|move|float|soar|walk|drive|chase|escape|travel|journey)\b")),
    ("lighting effects", re.compile(r"\b(light|bright|glow|shine|dark|shadow|color|gold|silver|neon|flash|spark)\b")),
    ("emotional intensity", re.compile(r"\b(free|strong|power|energy|wild|alive|dream|hope|fear|brave|lost|found)\b")),
    ("temporal atmosphere", re.compile(r"\b(night|day|morning|evening|forever|moment|now|always|never|yesterday|tomorrow)\b")),
    ("environmental setting", re.compile(r"\b(city|street|road|home|world|place|space|heaven|earth|room|door|window)\b")),
)
_DEFAULT_STORY_ELEMENT = "visual atmosphere"
_FILLER_TEXT = "Instrumental break"


@dataclass(frozen=True, slots=True)
class LyricSection:
    index: int
    text: str
    section_type: SectionType
    story_elements: tuple[str, ...]
    emotional_arc: str


def split_lyrics(lyrics: str, section_count: int) -> list[LyricSection]:
    """Split lyrics into exactly ``section_count`` analysed sections.

    Sections come from explicit markers first, then blank-line paragraphs, then
    evenly grouped lines. Surplus sections are combined; missing ones are shared
    from the nearest source section, and any trailing gap repeats the last text.
    """
    cleaned = (lyrics or "").strip()
    if not cleaned or section_count <= 0:
        return []

    sources = _source_sections(cleaned, section_count)
    texts: list[str] = []
    if len(sources) == section_count:
        texts = list(sources)
    elif len(sources) > section_count:
        per_section = math.ceil(len(sources) / section_count)
        for i in range(section_count):
            combined = "\n\n".join(sources[i * per_section:(i + 1) * per_section]).strip()
            if combined:
                texts.append(combined)
    else:
        for i in range(section_count):
            texts.append(sources[(i * len(sources)) // section_count])

    while len(texts) < section_count:
        texts.append(texts[-1] if texts else _FILLER_TEXT)

    return [_analyse(text, index, section_count) for index, text in enumerate(texts[:section_count])]


def _source_sections(lyrics: str, section_count: int) -> list[str]:
    marker_split = [part.strip() for part in _SECTION_MARKER.split(lyrics) if part.strip()]
    if len(marker_split) >= section_count:
        return marker_split

    unmarked = _SECTION_MARKER.sub("", lyrics)
    paragraphs = [part.strip() for part in _PARAGRAPH_BREAK.split(unmarked) if part.strip()]
    if len(paragraphs) >= section_count:
        return paragraphs

    lines = [line.strip() for line in unmarked.splitlines() if line.strip()]
    per_section = math.ceil(len(lines) / section_count)
    grouped = ["\n".join(lines[i:i + per_section]) for i in range(0, len(lines), per_section)]
    return grouped or [lyrics]


def _analyse(text: str, index: int, total: int) -> LyricSection:
    section_type = detect_section_type(text)
    return LyricSection(
        index=index,
        text=text.strip(),
        section_type=section_type,
        story_elements=extract_story_elements(text),
        emotional_arc=emotional_arc(index, total, section_type),
    )


def detect_section_type(text: str) -> SectionType:
    lowered = text.lower()
    for keyword in ("chorus", "verse", "bridge", "intro", "outro"):
        if keyword in lowered:
            return keyword  # type: ignore[return-value]

    lines = [line.strip().lower() for line in text.splitlines() if line.strip()]
    if len(lines) <= 2:
        return "bridge"
    # Heavy line repetition reads as a hook.
    if len(set(lines)) < len(lines) * 0.7:
        return "chorus"
    return "verse"


def extract_story_elements(text: str) -> tuple[str, ...]:
    lowered = text.lower()
    elements = tuple(label for label, pattern in _STORY_PATTERNS if pattern.search(lowered))
    return elements or (_DEFAULT_STORY_ELEMENT,)


def emotional_arc(index: int, total: int, section_type: SectionType) -> str:
    if section_type == "intro":
        return "establishing"
    if section_type == "outro":
        return "resolving"
    if section_type == "chorus":
        return "climactic"
    if section_type == "bridge":
        return "transitional"

    position = 0.5 if total == 1 else index / (total - 1)
    if position <= 0.2:
        return "opening"
    if position <= 0.4:
        return "building"
    if position <= 0.6:
        return "intensifying"
    if position <= 0.8:
        return "peaking"
    return "concluding"
