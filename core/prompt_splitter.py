from __future__ import annotations

import re
from dataclasses import dataclass

from core.constants import STYLE_KEYWORDS

_STYLE_PATTERNS = tuple(
    re.compile(rf"(?<![\w-]){re.escape(keyword)}(?![\w-])", re.IGNORECASE)
    for keywords in STYLE_KEYWORDS.values()
    for keyword in keywords
)


@dataclass
class PromptSplit:
    clip_l_prompt: str
    t5xxl_prompt: str


def is_style_segment(segment: str) -> bool:
    return any(pattern.search(segment) for pattern in _STYLE_PATTERNS)


def split_prompt_for_dual_clip(prompt: str) -> PromptSplit:
    """
    Split a prompt for FLUX's dual text encoder.

    T5 gets the whole prompt.  CLIP-L gets only the comma-separated segments
    that carry style keywords, or the whole prompt when there are none.
    """
    text = (prompt or "").strip()
    if not text:
        return PromptSplit(clip_l_prompt="", t5xxl_prompt="")

    segments = [segment.strip() for segment in text.split(",") if segment.strip()]
    style_segments = [segment for segment in segments if is_style_segment(segment)]
    clip_l = ", ".join(style_segments) if style_segments else text
    return PromptSplit(clip_l_prompt=clip_l, t5xxl_prompt=text)
