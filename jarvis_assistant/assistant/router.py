"""
Model router: picks a backend model tier for a turn.

Pure and deterministic; the tier -> model name mapping lives in config.
"""

import re
from enum import Enum
from typing import Optional

from jarvis_assistant.assistant.types import MediaKind, MediaPayload


class ModelTier(Enum):
    LOW_LATENCY = "low_latency"
    DEFAULT = "default"
    DEEP_REASONING = "deep_reasoning"


DEEP_REASONING_THINKING_BUDGET = 32768

COMPLEX_KEYWORDS = (
    "explain",
    "in detail",
    "analyze",
    "analyse",
    "algorithm",
    "step by step",
    "compare",
    "derive",
    "prove",
    "reasoning",
    "debug",
    "architecture",
    "trade-offs",
    "tradeoffs",
)

_COMPLEX_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in COMPLEX_KEYWORDS) + r")\b",
    re.IGNORECASE,
)

_HEAVY_MEDIA = (MediaKind.VIDEO, MediaKind.AUDIO)


def select_model(prompt: str, media: Optional[MediaPayload] = None) -> ModelTier:
    """Choose the model tier for a turn.

    Rules in priority order: video/audio input, complex-reasoning keywords,
    very short prompts (three words or fewer), everything else.
    """
    if media is not None and media.kind in _HEAVY_MEDIA:
        return ModelTier.DEEP_REASONING
    if _COMPLEX_PATTERN.search(prompt or ""):
        return ModelTier.DEEP_REASONING
    if len((prompt or "").split()) <= 3:
        return ModelTier.LOW_LATENCY
    return ModelTier.DEFAULT


def thinking_budget(tier: ModelTier) -> Optional[int]:
    """Thinking-token hint for the tier, None to leave the backend default."""
    if tier is ModelTier.DEEP_REASONING:
        return DEEP_REASONING_THINKING_BUDGET
    return None
