import logging
from typing import List, Optional

from survey_panel.generation import GenerationClient
from survey_panel.models import Persona, TargetAudience
from survey_panel.prompts import build_persona_prompt

logger = logging.getLogger(__name__)


def assign_unique_ids(personas: List[Persona]) -> List[Persona]:
    """Gives blank or repeated ids a fresh ``p<n>`` id so ids are unique within the panel."""
    used = {p.id for p in personas if p.id.strip()}
    seen = set()
    result = []
    counter = 1
    for persona in personas:
        if persona.id.strip() and persona.id not in seen:
            seen.add(persona.id)
            result.append(persona)
            continue
        while f"p{counter}" in used or f"p{counter}" in seen:
            counter += 1
        new_id = f"p{counter}"
        logger.warning(f"Persona '{persona.name}' had id '{persona.id}', reassigned to '{new_id}'")
        seen.add(new_id)
        result.append(persona.copy_with_id(new_id))
    return result


async def generate_personas(
    client: GenerationClient, audience: TargetAudience, temperature: Optional[float] = 0.7
) -> List[Persona]:
    """
    Synthesizes up to ``audience.count`` personas for the target audience.

    Raises GenerationFailure when the call fails; the operator may retry.
    """
    spec, shape = build_persona_prompt(audience.description, audience.count, temperature=temperature)
    records = await client.generate(spec, shape)

    personas = [Persona.model_validate(record.model_dump()) for record in records]
    if len(personas) > audience.count:
        logger.info(f"Model returned {len(personas)} personas, keeping the first {audience.count}")
        personas = personas[:audience.count]
    elif len(personas) < audience.count:
        logger.warning(f"Only generated {len(personas)}/{audience.count} personas")

    return assign_unique_ids(personas)
