"""
Panel simulator: has every persona of the panel answer the survey, one at a time.

Personas are processed strictly in panel order and persona i+1 is only
started after persona i's call has returned. A failed persona is logged and
skipped so the rest of the panel's answers are kept, and a progress update is
emitted after every attempt whether it succeeded or not.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from survey_panel.coercion import coerce
from survey_panel.errors import GenerationFailure
from survey_panel.generation import GenerationClient
from survey_panel.models import Persona, QuestionAnswer, Survey, SurveyResponse
from survey_panel.prompts import SimulatedAnswers, build_simulation_prompt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationProgress:
    completed: int
    total: int
    persona: Persona
    response: Optional[SurveyResponse] = None

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100

    @property
    def succeeded(self) -> bool:
        return self.response is not None


@dataclass
class SimulationOutcome:
    responses: List[SurveyResponse] = field(default_factory=list)
    failures: int = 0
    attempted: int = 0
    cancelled: bool = False


class CancelToken:
    """Cooperative cancellation flag, checked between personas."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


ProgressCallback = Callable[[SimulationProgress], None]


def build_response(persona: Persona, survey: Survey, simulated: SimulatedAnswers) -> SurveyResponse:
    """Coerces the raw answers of one persona into a SurveyResponse."""
    answers = []
    answered = set()
    for item in simulated.answers:
        question = survey.question(item.question_id)
        if question is None:
            logger.warning(f"Dropping answer from {persona.id} for unknown question '{item.question_id}'")
            continue
        if question.id in answered:
            logger.warning(f"Dropping repeated answer from {persona.id} for question '{question.id}'")
            continue
        answered.add(question.id)
        answers.append(QuestionAnswer(question_id=question.id, answer=coerce(question, item.answer)))

    missing = [q.id for q in survey.questions if q.id not in answered]
    if missing:
        logger.warning(f"Respondent {persona.id} left questions unanswered: {missing}")
    return SurveyResponse(persona_id=persona.id, answers=answers)


async def simulate_persona(client: GenerationClient, persona: Persona, survey: Survey) -> SurveyResponse:
    spec, shape = build_simulation_prompt(survey, persona)
    simulated = await client.generate(spec, shape)
    return build_response(persona, survey, simulated)


async def simulate(
    panel: Sequence[Persona],
    survey: Survey,
    client: GenerationClient,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> SimulationOutcome:
    """
    Runs the survey for each persona of ``panel`` in order.

    Returns the collected responses and the number of personas whose
    generation call failed. Per-persona failures never raise.
    """
    outcome = SimulationOutcome()
    total = len(panel)
    logger.info(f"Collecting survey responses from {total} personas...")

    for i, persona in enumerate(panel):
        if cancel is not None and cancel.cancelled:
            logger.info(f"Simulation cancelled after {i}/{total} personas")
            outcome.cancelled = True
            break

        response = None
        try:
            response = await simulate_persona(client, persona, survey)
        except GenerationFailure as e:
            logger.warning(f"Simulation failed for persona {persona.name} ({persona.id}): {e}")
            outcome.failures += 1
        else:
            outcome.responses.append(response)

        outcome.attempted = i + 1
        if on_progress is not None:
            on_progress(SimulationProgress(completed=i + 1, total=total, persona=persona, response=response))

    logger.info(f"Collected {len(outcome.responses)} responses, {outcome.failures} failures")
    return outcome
