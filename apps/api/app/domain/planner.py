"""Segment planning: time ranges plus a generation prompt per segment."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math

from app.adapters.safety.base import ContentFilter
from app.domain.lyrics import LyricSection, split_lyrics
from app.errors import invalid_input
from app.schemas.job import CharacterProfile

logger = logging.getLogger(__name__)

MIN_SEGMENTS = 1
MAX_SEGMENTS = 10
QUALITY_DIRECTIVE = "Cinematic music video scene, professional lighting, 4K quality, smooth motion"
_LYRIC_EXCERPT_CHARS = 200

_NARRATIVE_BY_POSITION: tuple[tuple[float, str], ...] = (
    (0.2, "Opening scene, establishing the mood, calm beginning"),
    (0.4, "Building intensity, rising action, energy increasing"),
    (0.6, "Peak energy, climactic moment, powerful performance"),
    (0.8, "Sustained intensity, emotional peak, dramatic visuals"),
)
_NARRATIVE_RESOLUTION = "Resolution, cooling down, reflective ending"


@dataclass(frozen=True, slots=True)
class PlannedSegment:
    segment_index: int
    start_seconds: float
    end_seconds: float
    prompt: str
    lyric_text: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentPlan:
    span_seconds: float
    segments: list[PlannedSegment]


def plan_segments(
    *,
    content_filter: ContentFilter,
    style_prompt: str,
    audio_duration_seconds: float | None = None,
    scene_boundaries: list[float] | None = None,
    segment_count_hint: int | None = None,
    lyrics: str | None = None,
    character_profile: CharacterProfile | None = None,
    tempo_bpm: float | None = None,
    default_segment_seconds: float = 8.0,
) -> SegmentPlan:
    """Split the requested span into contiguous segments with filtered prompts.

    Deterministic for identical inputs. Raises ``INVALID_INPUT`` for a blank style
    prompt, a count outside ``[1, 10]``, a non-positive span, malformed scene
    boundaries, or a prompt the content filter blocks.
    """
    style = (style_prompt or "").strip()
    if not style:
        raise invalid_input("style_prompt must not be empty")
    for field, value in (("audio_duration_seconds", audio_duration_seconds), ("tempo_bpm", tempo_bpm)):
        if value is not None and not math.isfinite(value):
            raise invalid_input(f"{field} must be a finite number", details={field: str(value)})
    if segment_count_hint is not None and not MIN_SEGMENTS <= segment_count_hint <= MAX_SEGMENTS:
        raise invalid_input(
            f"segment_count_hint must be between {MIN_SEGMENTS} and {MAX_SEGMENTS}",
            details={"segment_count_hint": segment_count_hint},
        )

    if scene_boundaries:
        ranges = _ranges_from_boundaries(scene_boundaries, segment_count_hint, audio_duration_seconds)
        span = scene_boundaries[-1]
    else:
        if audio_duration_seconds is None:
            raise invalid_input("audio_duration_seconds or scene_boundaries is required")
        if audio_duration_seconds <= 0:
            raise invalid_input("span must be greater than zero", details={"audio_duration_seconds": audio_duration_seconds})
        span = float(audio_duration_seconds)
        count = segment_count_hint or _default_count(span, default_segment_seconds)
        ranges = _equal_ranges(span, count)

    sections = split_lyrics(lyrics, len(ranges)) if lyrics else []
    segments: list[PlannedSegment] = []
    for index, (start, end) in enumerate(ranges):
        section = sections[index] if index < len(sections) else None
        raw_prompt = build_prompt(
            style_prompt=style,
            index=index,
            total=len(ranges),
            character_profile=character_profile,
            tempo_bpm=tempo_bpm,
            section=section,
        )
        review = content_filter.review(raw_prompt)
        if review.blocked:
            raise invalid_input(
                "Prompt contains blocked content",
                details={"segment_index": index, "violations": review.violations},
            )
        if review.violations:
            logger.info("planner.prompt_sanitized segment_index=%s violation_count=%s", index, len(review.violations))
        segments.append(
            PlannedSegment(
                segment_index=index,
                start_seconds=start,
                end_seconds=end,
                prompt=review.sanitized,
                lyric_text=section.text if section is not None else None,
            )
        )
    return SegmentPlan(span_seconds=span, segments=segments)


def _default_count(span: float, default_segment_seconds: float) -> int:
    return min(MAX_SEGMENTS, max(MIN_SEGMENTS, math.ceil(span / default_segment_seconds)))


def _equal_ranges(span: float, count: int) -> list[tuple[float, float]]:
    ranges = [(span * i / count, span * (i + 1) / count) for i in range(count)]
    start, _ = ranges[-1]
    ranges[-1] = (start, span)
    return ranges


def _ranges_from_boundaries(
    boundaries: list[float],
    segment_count_hint: int | None,
    audio_duration_seconds: float | None,
) -> list[tuple[float, float]]:
    if len(boundaries) < 2:
        raise invalid_input("scene_boundaries needs at least two offsets")
    if not all(math.isfinite(offset) for offset in boundaries):
        raise invalid_input("scene_boundaries must be finite numbers")
    if boundaries[0] < 0:
        raise invalid_input("scene_boundaries must not be negative")
    for previous, current in zip(boundaries, boundaries[1:]):
        if current <= previous:
            raise invalid_input("scene_boundaries must be strictly increasing", details={"scene_boundaries": boundaries})

    count = len(boundaries) - 1
    if not MIN_SEGMENTS <= count <= MAX_SEGMENTS:
        raise invalid_input(
            f"scene_boundaries must describe between {MIN_SEGMENTS} and {MAX_SEGMENTS} segments",
            details={"segment_count": count},
        )
    if segment_count_hint is not None and segment_count_hint != count:
        raise invalid_input(
            "segment_count_hint disagrees with scene_boundaries",
            details={"segment_count_hint": segment_count_hint, "segment_count": count},
        )
    if audio_duration_seconds is not None and boundaries[-1] > audio_duration_seconds:
        raise invalid_input("scene_boundaries exceed audio_duration_seconds")
    return [(float(start), float(end)) for start, end in zip(boundaries, boundaries[1:])]


def narrative_for_position(index: int, total: int) -> str:
    position = index / (total - 1 or 1)
    for upper, description in _NARRATIVE_BY_POSITION:
        if position < upper:
            return description
    return _NARRATIVE_RESOLUTION


def tempo_label(tempo_bpm: float) -> str:
    if tempo_bpm < 90:
        return "slow tempo, lingering camera moves"
    if tempo_bpm < 120:
        return "medium tempo, steady rhythmic cuts"
    return "fast tempo, energetic quick cuts"


def build_prompt(
    *,
    style_prompt: str,
    index: int,
    total: int,
    character_profile: CharacterProfile | None = None,
    tempo_bpm: float | None = None,
    section: LyricSection | None = None,
) -> str:
    parts = [style_prompt]
    if character_profile is not None:
        parts.extend(_character_parts(character_profile, index, total))
    parts.append(f"Narrative: {narrative_for_position(index, total)}")
    if tempo_bpm is not None and tempo_bpm > 0:
        parts.append(f"Tempo: {tempo_label(tempo_bpm)}")
    if section is not None:
        parts.append(
            f"Lyric context: {section.section_type} with {', '.join(section.story_elements)}, "
            f"{section.emotional_arc} arc"
        )
        excerpt = " ".join(section.text.split())[:_LYRIC_EXCERPT_CHARS]
        parts.append(f'Inspired by: "{excerpt}"')
        parts.append("Emotional performance matching the music")
    parts.append(QUALITY_DIRECTIVE)
    return ". ".join(part.rstrip(". ") for part in parts) + "."


def _character_parts(profile: CharacterProfile, index: int, total: int) -> list[str]:
    parts: list[str] = []
    if profile.description:
        parts.append(f"Character: {profile.description}")
    if profile.visual_style:
        parts.append(f"Visual style: {profile.visual_style}")
    if profile.mood:
        parts.append(f"Mood: {', '.join(profile.mood)}")
    if profile.color_palette:
        parts.append(f"Color palette: {', '.join(profile.color_palette[:3])}")
    if profile.camera_work:
        parts.append(f"Camera: {profile.camera_work}")
    if profile.setting_suggestions:
        position = index / (total - 1 or 1)
        setting_index = min(len(profile.setting_suggestions) - 1, math.floor(position * len(profile.setting_suggestions)))
        parts.append(f"Setting: {profile.setting_suggestions[setting_index]}")
    return parts


__all__ = [
    "MAX_SEGMENTS",
    "MIN_SEGMENTS",
    "PlannedSegment",
    "SegmentPlan",
    "build_prompt",
    "narrative_for_position",
    "plan_segments",
]
