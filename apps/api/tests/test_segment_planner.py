"""Segment planning tests: ranges, validation and prompt composition."""

from __future__ import annotations

import unittest

from app.adapters.safety import KeywordContentFilter
from app.domain.planner import (
    QUALITY_DIRECTIVE,
    build_prompt,
    narrative_for_position,
    plan_segments,
    tempo_label,
)
from app.errors import ApiError
from app.schemas.job import CharacterProfile


def _plan(**overrides):
    kwargs = {
        "content_filter": KeywordContentFilter(),
        "style_prompt": "Neon city at night",
    }
    kwargs.update(overrides)
    return plan_segments(**kwargs)


class PlanRangeTests(unittest.TestCase):
    def test_hint_splits_duration_into_equal_contiguous_ranges(self) -> None:
        plan = _plan(audio_duration_seconds=80.0, segment_count_hint=4)

        self.assertEqual(plan.span_seconds, 80.0)
        self.assertEqual(
            [(s.start_seconds, s.end_seconds) for s in plan.segments],
            [(0.0, 20.0), (20.0, 40.0), (40.0, 60.0), (60.0, 80.0)],
        )
        self.assertEqual([s.segment_index for s in plan.segments], [0, 1, 2, 3])

    def test_ranges_cover_span_without_gaps_for_uneven_splits(self) -> None:
        plan = _plan(audio_duration_seconds=10.0, segment_count_hint=3)

        self.assertEqual(plan.segments[0].start_seconds, 0.0)
        self.assertEqual(plan.segments[-1].end_seconds, 10.0)
        for previous, current in zip(plan.segments, plan.segments[1:]):
            self.assertEqual(previous.end_seconds, current.start_seconds)

    def test_default_count_follows_segment_length_and_is_clamped(self) -> None:
        cases = [(5.0, 1), (16.0, 2), (17.0, 3), (80.0, 10), (300.0, 10)]
        for duration, expected in cases:
            with self.subTest(duration=duration):
                self.assertEqual(len(_plan(audio_duration_seconds=duration).segments), expected)

    def test_scene_boundaries_define_ranges(self) -> None:
        plan = _plan(scene_boundaries=[0.0, 10.0, 25.0, 40.0])

        self.assertEqual(plan.span_seconds, 40.0)
        self.assertEqual(
            [(s.start_seconds, s.end_seconds) for s in plan.segments],
            [(0.0, 10.0), (10.0, 25.0), (25.0, 40.0)],
        )

    def test_planning_is_deterministic(self) -> None:
        first = _plan(audio_duration_seconds=30.0, segment_count_hint=3, lyrics="one\ntwo\nthree", tempo_bpm=128)
        second = _plan(audio_duration_seconds=30.0, segment_count_hint=3, lyrics="one\ntwo\nthree", tempo_bpm=128)
        self.assertEqual(first, second)


class PlanValidationTests(unittest.TestCase):
    def test_invalid_requests_raise_invalid_input(self) -> None:
        cases = {
            "blank_style": {"style_prompt": "   ", "audio_duration_seconds": 10.0},
            "hint_too_large": {"audio_duration_seconds": 10.0, "segment_count_hint": 11},
            "hint_zero": {"audio_duration_seconds": 10.0, "segment_count_hint": 0},
            "no_span": {},
            "zero_duration": {"audio_duration_seconds": 0.0},
            "negative_duration": {"audio_duration_seconds": -4.0},
            "single_boundary": {"scene_boundaries": [5.0]},
            "negative_boundary": {"scene_boundaries": [-1.0, 5.0]},
            "non_increasing_boundaries": {"scene_boundaries": [0.0, 10.0, 10.0]},
            "too_many_boundaries": {"scene_boundaries": [float(i) for i in range(12)]},
            "hint_disagrees": {"scene_boundaries": [0.0, 10.0, 20.0], "segment_count_hint": 3},
            "boundaries_past_audio": {"scene_boundaries": [0.0, 10.0, 40.0], "audio_duration_seconds": 30.0},
            "infinite_duration": {"audio_duration_seconds": float("inf")},
            "nan_duration": {"audio_duration_seconds": float("nan")},
            "nan_boundary": {"scene_boundaries": [0.0, float("nan"), 20.0]},
            "infinite_boundary": {"scene_boundaries": [0.0, 10.0, float("inf")]},
            "infinite_tempo": {"audio_duration_seconds": 10.0, "tempo_bpm": float("inf")},
        }
        for name, overrides in cases.items():
            with self.subTest(case=name):
                with self.assertRaises(ApiError) as context:
                    _plan(**overrides)
                self.assertEqual(context.exception.status_code, 400)
                self.assertEqual(context.exception.payload.code, "INVALID_INPUT")

    def test_blocked_prompt_reports_segment_and_violations(self) -> None:
        with self.assertRaises(ApiError) as context:
            _plan(style_prompt="Graphic gore scene", audio_duration_seconds=8.0)

        self.assertEqual(context.exception.payload.code, "INVALID_INPUT")
        self.assertEqual(context.exception.payload.details["segment_index"], 0)
        self.assertEqual(context.exception.payload.details["violations"], ["gore"])

    def test_flagged_words_are_rewritten_not_rejected(self) -> None:
        plan = _plan(style_prompt="A gun in the rain", audio_duration_seconds=8.0)

        prompt = plan.segments[0].prompt
        self.assertNotIn("gun ", prompt)
        self.assertIn("geometric metallic shape in the rain", prompt)


class PromptCompositionTests(unittest.TestCase):
    def test_minimal_prompt_layout(self) -> None:
        prompt = build_prompt(style_prompt="Neon city", index=0, total=4)

        self.assertEqual(
            prompt,
            "Neon city. Narrative: Opening scene, establishing the mood, calm beginning. " + QUALITY_DIRECTIVE + ".",
        )

    def test_narrative_follows_position(self) -> None:
        self.assertTrue(narrative_for_position(0, 4).startswith("Opening scene"))
        self.assertTrue(narrative_for_position(1, 4).startswith("Building intensity"))
        self.assertTrue(narrative_for_position(2, 4).startswith("Sustained intensity"))
        self.assertTrue(narrative_for_position(3, 4).startswith("Resolution"))
        self.assertTrue(narrative_for_position(0, 1).startswith("Opening scene"))

    def test_tempo_labels(self) -> None:
        self.assertTrue(tempo_label(72).startswith("slow tempo"))
        self.assertTrue(tempo_label(100).startswith("medium tempo"))
        self.assertTrue(tempo_label(140).startswith("fast tempo"))

    def test_character_profile_enriches_prompt(self) -> None:
        profile = CharacterProfile(
            description="singer in a red jacket",
            mood=["moody", "hopeful"],
            color_palette=["red", "teal", "black", "white"],
            setting_suggestions=["beach", "rooftop"],
        )

        first = build_prompt(style_prompt="Neon city", index=0, total=4, character_profile=profile, tempo_bpm=128)
        last = build_prompt(style_prompt="Neon city", index=3, total=4, character_profile=profile)

        self.assertIn("Character: singer in a red jacket", first)
        self.assertIn("Mood: moody, hopeful", first)
        self.assertIn("Color palette: red, teal, black.", first)
        self.assertIn("Setting: beach", first)
        self.assertIn("Tempo: fast tempo", first)
        self.assertIn("Setting: rooftop", last)
        self.assertNotIn("Tempo:", last)

    def test_lyrics_attach_to_segments(self) -> None:
        lyrics = "[Verse 1]\nWalking down the street\n[Chorus]\nWe light up the night\n[Outro]\nGoodbye sun"
        plan = _plan(audio_duration_seconds=24.0, segment_count_hint=3, lyrics=lyrics)

        self.assertEqual(
            [s.lyric_text for s in plan.segments],
            ["Walking down the street", "We light up the night", "Goodbye sun"],
        )
        self.assertIn('Inspired by: "Walking down the street"', plan.segments[0].prompt)
        self.assertIn("Emotional performance matching the music", plan.segments[0].prompt)

    def test_without_lyrics_segments_have_no_lyric_text(self) -> None:
        plan = _plan(audio_duration_seconds=16.0)
        self.assertTrue(all(s.lyric_text is None for s in plan.segments))
