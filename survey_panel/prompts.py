"""
Prompt construction for the three generation requests of a survey run:
persona generation, per-persona response simulation and result analysis.

Every builder is a pure function of its inputs. Nothing here reads the clock
or draws random numbers, so the same survey and persona always produce the
same prompt and output shape.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from survey_panel.models import Persona, QuestionType, Sentiment, Survey, SurveyResponse, RATING_MAX, RATING_MIN


@dataclass(frozen=True)
class PromptSpec:
    prompt: str
    system_context: Optional[str] = None
    temperature: Optional[float] = None


@dataclass(frozen=True)
class OutputShape:
    """Declarative description of the JSON a generation call must return."""
    name: str
    schema: Dict[str, Any]
    adapter: TypeAdapter = field(compare=False, repr=False)

    @classmethod
    def of(cls, name: str, output_type) -> "OutputShape":
        adapter = TypeAdapter(output_type)
        return cls(name=name, schema=adapter.json_schema(), adapter=adapter)

    def validate(self, data: Any):
        """Raises pydantic.ValidationError when ``data`` does not fit the shape."""
        return self.adapter.validate_python(data)

    @property
    def expects_array(self) -> bool:
        return self.schema.get("type") == "array"


# --- Wire formats ---

class PersonaRecord(BaseModel):
    id: str
    name: str
    age: int
    occupation: str
    traits: str = Field(description="Comma separated personality traits")
    painPoints: str = Field(description="Key frustrations related to the target description")


class SimulatedAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId")
    # Any JSON scalar; coerce() normalizes it per question type
    answer: Optional[Union[str, int, float, bool]] = Field(
        default=None, description="The answer text or selected option"
    )

    @field_validator('question_id', mode='before')
    @classmethod
    def stringify_numeric_id(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class SimulatedAnswers(BaseModel):
    answers: List[SimulatedAnswer]


class AnalysisPayload(BaseModel):
    summary: str = Field(description="Executive summary of the findings")
    keyInsights: List[str] = Field(description="List of 3-5 major takeaways")
    sentiment: Sentiment
    featureSuggestions: List[str] = Field(
        description="List of concrete product or marketing suggestions based on feedback"
    )


PERSONA_SHAPE = OutputShape.of("personas", List[PersonaRecord])
RESPONSE_SHAPE = OutputShape.of("survey_answers", SimulatedAnswers)
ANALYSIS_SHAPE = OutputShape.of("analysis", AnalysisPayload)


# --- Builders ---

def build_persona_prompt(description: str, count: int, temperature: Optional[float] = 0.7) -> Tuple[PromptSpec, OutputShape]:
    """Shape 1: synthesize ``count`` personas for a target audience description."""
    prompt = f"""Generate {count} distinct and realistic user personas based on the following target audience description:
"{description}"

Ensure diversity in background within the constraints of the target audience.
Assign a unique ID (e.g., "p1", "p2") to each."""
    system_context = (
        "You are an expert market researcher specializing in respondent profiling and persona development."
    )
    return PromptSpec(prompt=prompt, system_context=system_context, temperature=temperature), PERSONA_SHAPE


def describe_persona(persona: Persona) -> str:
    return f"""Name: {persona.name}
Age: {persona.age}
Job: {persona.occupation}
Traits: {persona.traits}
Pain Points: {persona.pain_points}"""


def format_question(question) -> str:
    details = ""
    if question.type == QuestionType.MULTIPLE_CHOICE:
        details = f" (Options: {', '.join(question.options or [])})"
    elif question.type == QuestionType.RATING_SCALE:
        details = f" (Rate from {RATING_MIN} to {RATING_MAX})"
    return f'ID: {question.id}. Question: "{question.text}"{details}'


def build_simulation_prompt(survey: Survey, persona: Persona) -> Tuple[PromptSpec, OutputShape]:
    """Shape 2: one persona role-plays answering every question of the survey."""
    questions_text = "\n".join(format_question(q) for q in survey.questions)

    system_context = f"""You are role-playing as a specific persona.
{describe_persona(persona)}

Answer the following survey questions authentically as this person would.
Be honest, consistent with your traits, and provide realistic detail for open-ended questions."""

    prompt = f"""Please answer this survey:
Survey: {survey.title}
Context: {survey.description}

{questions_text}

Return the answers in a structured format matching the question IDs, one answer per question.
For rating scales, return the number as a string.
For multiple choice questions, return the text of the selected option."""
    return PromptSpec(prompt=prompt, system_context=system_context), RESPONSE_SHAPE


def render_participant(survey: Survey, response: SurveyResponse, persona: Optional[Persona]) -> str:
    answers_readable = []
    for item in response.answers:
        question = survey.question(item.question_id)
        question_text = question.text if question else item.question_id
        answers_readable.append(f'Q: "{question_text}" -> A: "{item.answer}"')
    if persona is not None:
        who = f"{persona.name} ({persona.occupation}, {persona.age})"
    else:
        who = f"Unknown participant {response.persona_id}"
    return f"Participant: {who}. Answers: [{'; '.join(answers_readable)}]"


def render_transcript(survey: Survey, responses: Sequence[SurveyResponse], panel: Sequence[Persona]) -> str:
    """Every response as attributed, readable text, in response order."""
    by_id = {p.id: p for p in panel}
    return "\n---\n".join(render_participant(survey, r, by_id.get(r.persona_id)) for r in responses)


def build_analysis_prompt(
    survey: Survey, responses: Sequence[SurveyResponse], panel: Sequence[Persona]
) -> Tuple[PromptSpec, OutputShape]:
    """Shape 3: narrative analysis over all transcripts."""
    prompt = f"""Analyze the following survey results from a simulated focus group.
Survey Title: {survey.title}
Survey Description: {survey.description}

Data:
{render_transcript(survey, responses, panel)}

Provide a comprehensive analysis for the product/marketing team."""
    system_context = (
        "You are a senior market research analyst. Base every statement strictly on the provided answers."
    )
    return PromptSpec(prompt=prompt, system_context=system_context), ANALYSIS_SHAPE


def render_instructions(spec: PromptSpec, shape: OutputShape) -> str:
    """Agent instructions: the system context followed by the mandatory output structure."""
    kind = "JSON array" if shape.expects_array else "JSON object"
    structure = json.dumps(shape.schema, indent=2, sort_keys=True)
    parts = []
    if spec.system_context:
        parts.append(spec.system_context.strip())
    parts.append(f"""**MANDATORY JSON STRUCTURE:** Your output MUST be a single, valid {kind} conforming to this JSON schema:

```json
{structure}
```

**Output Requirement:** Return ONLY the {kind}. NO explanations or other text before or after it.""")
    return "\n\n".join(parts)
