import pytest

from survey_panel.coercion import coerce, parse_rating
from survey_panel.models import Question, QuestionType, RatingAnswer, TextAnswer

RATING = Question(id="q1", text="How often do you struggle?", type=QuestionType.RATING_SCALE)
OPEN = Question(id="q2", text="Biggest pain point?", type=QuestionType.OPEN_ENDED)
CHOICE = Question(id="q3", text="Preferred device?", type=QuestionType.MULTIPLE_CHOICE, options=["Phone", "Laptop"])


def test_rating_parses_integer_text():
    assert coerce(RATING, "4") == RatingAnswer(value=4)


def test_rating_falls_back_to_neutral():
    assert coerce(RATING, "not-a-number") == RatingAnswer(value=3)


@pytest.mark.parametrize("raw, expected", [
    (" 5 ", 5),
    ("2 - Disagree", 2),
    (4, 4),
    (4.7, 4),
    ("9", 5),
    ("0", 1),
    ("", 3),
    (None, 3),
    (True, 3),
    (float("nan"), 3),
])
def test_parse_rating(raw, expected):
    assert parse_rating(raw) == expected


def test_text_passes_through_unchanged():
    assert coerce(OPEN, "  Too many apps  ") == TextAnswer(value="  Too many apps  ")


def test_choice_outside_options_is_kept():
    assert coerce(CHOICE, "Tablet") == TextAnswer(value="Tablet")


def test_non_string_text_is_stringified():
    assert coerce(OPEN, 12) == TextAnswer(value="12")
    assert coerce(OPEN, None) == TextAnswer(value="")
