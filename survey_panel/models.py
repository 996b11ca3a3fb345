"""
Pydantic models for surveys, personas, simulated responses and analysis results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RATING_MIN = 1
RATING_MAX = 5
RATING_DOMAIN = tuple(range(RATING_MIN, RATING_MAX + 1))
NEUTRAL_RATING = 3


class QuestionType(str, Enum):
    OPEN_ENDED = "OPEN_ENDED"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    RATING_SCALE = "RATING_SCALE"  # 1-5


class Question(BaseModel):
    id: str
    text: str
    type: QuestionType
    options: Optional[List[str]] = None

    @model_validator(mode='after')
    def check_options(self):
        if self.type == QuestionType.MULTIPLE_CHOICE:
            if not self.options:
                raise ValueError(f"Multiple choice question '{self.id}' needs at least one option")
        else:
            # Options only mean something for multiple choice
            self.options = None
        return self

    @property
    def is_tabulated(self) -> bool:
        return self.type != QuestionType.OPEN_ENDED


class Survey(BaseModel):
    title: str
    description: str = ""
    questions: List[Question] = Field(default_factory=list)

    @field_validator('questions')
    @classmethod
    def unique_question_ids(cls, questions: List[Question]) -> List[Question]:
        seen = set()
        for question in questions:
            if question.id in seen:
                raise ValueError(f"Duplicate question id '{question.id}'")
            seen.add(question.id)
        return questions

    def question(self, question_id: str) -> Optional[Question]:
        """Returns the question with the given id, or None."""
        for question in self.questions:
            if question.id == question_id:
                return question
        return None


class Persona(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    age: int
    occupation: str
    traits: str = ""
    pain_points: str = Field(default="", alias="painPoints")

    @field_validator('age', mode='before')
    @classmethod
    def validate_age(cls, v):
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return v

    def copy_with_id(self, persona_id: Optional[str] = None) -> "Persona":
        """Independent copy, optionally under a new id. Panel and library never share instances."""
        update = {"id": persona_id} if persona_id is not None else {}
        return self.model_copy(update=update, deep=True)

    def get_summary(self) -> str:
        return f"{self.name}, {self.age} - {self.occupation}"


class TargetAudience(BaseModel):
    description: str
    count: int = Field(default=5, ge=1)


# --- Answers: a tagged variant picked by the question type ---

class RatingAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["rating"] = "rating"
    value: int = Field(ge=RATING_MIN, le=RATING_MAX)

    def __str__(self) -> str:
        return str(self.value)


class TextAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str

    def __str__(self) -> str:
        return self.value


Answer = Annotated[Union[RatingAnswer, TextAnswer], Field(discriminator="kind")]


class QuestionAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answer: Answer


class SurveyResponse(BaseModel):
    """One persona's completed survey. Replaced, never edited, when the panel is re-run."""
    model_config = ConfigDict(frozen=True)

    persona_id: str
    answers: List[QuestionAnswer] = Field(default_factory=list)

    def answer_for(self, question_id: str) -> Optional[Union[RatingAnswer, TextAnswer]]:
        for item in self.answers:
            if item.question_id == question_id:
                return item.answer
        return None


class Sentiment(str, Enum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sentiment: Sentiment
    summary: str
    key_insights: List[str] = Field(default_factory=list, alias="keyInsights")
    feature_suggestions: List[str] = Field(default_factory=list, alias="featureSuggestions")


class SurveyTemplate(BaseModel):
    id: str
    name: str
    survey: Survey
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
