"""
Turns the loosely typed answer values a model returns into typed answers.
"""

import math
import re
from typing import Any

from survey_panel.models import (
    NEUTRAL_RATING,
    RATING_MAX,
    RATING_MIN,
    Question,
    QuestionType,
    RatingAnswer,
    TextAnswer,
)

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')


def parse_rating(raw: Any) -> int:
    """
    Reads a 1-5 rating out of a raw model value.

    The leading integer of a string counts ("4", " 4 ", "4 - Agree" are all 4).
    Anything unparsable yields the neutral rating, and values outside the
    scale are clamped onto it.
    """
    if isinstance(raw, bool) or raw is None:
        return NEUTRAL_RATING
    if isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return NEUTRAL_RATING
        value = int(raw)
    else:
        match = _LEADING_INT.match(str(raw))
        if not match:
            return NEUTRAL_RATING
        value = int(match.group(1))
    return max(RATING_MIN, min(RATING_MAX, value))


def coerce(question: Question, raw: Any):
    """Returns a RatingAnswer or TextAnswer for ``raw`` according to the question type."""
    if question.type == QuestionType.RATING_SCALE:
        return RatingAnswer(value=parse_rating(raw))
    # Open-ended and multiple choice text is passed through, even when it
    # matches none of the declared options.
    if raw is None:
        return TextAnswer(value="")
    return TextAnswer(value=raw if isinstance(raw, str) else str(raw))
