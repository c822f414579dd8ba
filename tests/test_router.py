"""Tests for model routing."""

from jarvis_assistant.assistant.router import (
    DEEP_REASONING_THINKING_BUDGET,
    ModelTier,
    select_model,
    thinking_budget,
)
from jarvis_assistant.assistant.types import MediaKind, MediaPayload


def _media(kind: MediaKind) -> MediaPayload:
    return MediaPayload(kind=kind, data=b"\x00", mime_type=f"{kind.value}/mp4")


def test_video_goes_to_deep_reasoning():
    assert select_model("ok", _media(MediaKind.VIDEO)) is ModelTier.DEEP_REASONING


def test_audio_goes_to_deep_reasoning():
    assert select_model("what is this", _media(MediaKind.AUDIO)) is ModelTier.DEEP_REASONING


def test_image_does_not_force_deep_reasoning():
    assert select_model("hi", _media(MediaKind.IMAGE)) is ModelTier.LOW_LATENCY


def test_short_prompt_is_low_latency():
    assert select_model("hi") is ModelTier.LOW_LATENCY
    assert select_model("turn on lights") is ModelTier.LOW_LATENCY


def test_complex_keywords_go_to_deep_reasoning():
    assert select_model("please explain in detail the algorithm") is ModelTier.DEEP_REASONING
    assert select_model("Compare these two options") is ModelTier.DEEP_REASONING


def test_keywords_match_whole_words_only():
    """'explained' or 'proven' inside other words should not trigger deep reasoning."""
    assert select_model("the unexplainedness of cats today") is ModelTier.DEFAULT


def test_ordinary_prompt_is_default():
    assert select_model("what's the weather today") is ModelTier.DEFAULT


def test_empty_prompt_is_low_latency():
    assert select_model("") is ModelTier.LOW_LATENCY


def test_thinking_budget_only_for_deep_reasoning():
    assert thinking_budget(ModelTier.DEEP_REASONING) == DEEP_REASONING_THINKING_BUDGET
    assert thinking_budget(ModelTier.DEFAULT) is None
    assert thinking_budget(ModelTier.LOW_LATENCY) is None
