"""
Aggregation of a completed simulation: deterministic frequency tables for the
closed-form questions plus one narrative analysis call.

The narrative sentiment is not reconciled with the tabulated counts; the two
may disagree.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Sequence, Union

import numpy as np

from survey_panel.errors import AnalysisFailure, GenerationFailure
from survey_panel.generation import GenerationClient
from survey_panel.models import (
    RATING_DOMAIN,
    AnalysisResult,
    Persona,
    Question,
    QuestionType,
    RatingAnswer,
    Survey,
    SurveyResponse,
)
from survey_panel.prompts import build_analysis_prompt, render_transcript

logger = logging.getLogger(__name__)

Bucket = Union[int, str]
FrequencyTable = Dict[Bucket, int]

__all__ = ["tabulate", "tabulate_question", "aggregate", "summarize_panel", "render_transcript"]


def domain_of(question: Question) -> List[Bucket]:
    if question.type == QuestionType.RATING_SCALE:
        return list(RATING_DOMAIN)
    if question.type == QuestionType.MULTIPLE_CHOICE:
        return list(question.options or [])
    return []


def tabulate_question(question: Question, responses: Sequence[SurveyResponse]) -> FrequencyTable:
    """
    Frequency table for one closed-form question.

    Every domain value starts at zero so empty buckets stay visible. Answers
    outside the domain are counted in extra buckets after the domain values.
    """
    table: FrequencyTable = {value: 0 for value in domain_of(question)}
    for response in responses:
        answer = response.answer_for(question.id)
        if answer is None:
            continue
        key = answer.value
        if question.type == QuestionType.RATING_SCALE and not isinstance(answer, RatingAnswer):
            key = str(answer.value)
        table[key] = table.get(key, 0) + 1
    return table


def tabulate(survey: Survey, responses: Sequence[SurveyResponse]) -> Dict[str, FrequencyTable]:
    """Frequency tables for every non open-ended question, in survey order."""
    return {q.id: tabulate_question(q, responses) for q in survey.questions if q.is_tabulated}


def summarize_panel(panel: Sequence[Persona]) -> Dict[str, Any]:
    """Descriptive statistics of the panel's demographics."""
    if not panel:
        return {"count": 0}
    ages = np.array([p.age for p in panel], dtype=float)
    occupations = Counter(p.occupation for p in panel)
    return {
        "count": len(panel),
        "age_avg": round(float(np.mean(ages)), 1),
        "age_median": float(np.median(ages)),
        "age_min": int(np.min(ages)),
        "age_max": int(np.max(ages)),
        "occupation_distribution": dict(occupations.most_common()),
    }


async def aggregate(
    survey: Survey,
    responses: Sequence[SurveyResponse],
    panel: Sequence[Persona],
    client: GenerationClient,
) -> AnalysisResult:
    """
    Narrative analysis of all responses via one generation call.

    Raises AnalysisFailure when the call fails or its output does not validate.
    """
    logger.info(f"Analyzing {len(responses)} responses to '{survey.title}'...")
    spec, shape = build_analysis_prompt(survey, responses, panel)
    try:
        payload = await client.generate(spec, shape)
    except GenerationFailure as e:
        logger.error(f"Analysis failed: {e}")
        raise AnalysisFailure(f"Simulation finished, but analysis failed: {e}") from e

    return AnalysisResult(
        sentiment=payload.sentiment,
        summary=payload.summary,
        key_insights=payload.keyInsights,
        feature_suggestions=payload.featureSuggestions,
    )
