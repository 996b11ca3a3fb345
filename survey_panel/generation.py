"""
Generation client: one structured call to the hosted model per request.

The client builds an ``agents.Agent`` whose instructions carry the mandatory
JSON structure, runs it once through ``Runner.run`` under a timeout, pulls the
JSON out of the final output and validates it against the expected shape.
Whatever goes wrong along the way is reported as a single GenerationFailure;
retrying is left to the caller.
"""

import asyncio
import json
import logging
import re
from typing import Any, Optional

from agents import Agent, ModelSettings, Runner
from pydantic import ValidationError

from survey_panel.config import DEFAULT_MODEL, Settings
from survey_panel.errors import GenerationFailure
from survey_panel.prompts import OutputShape, PromptSpec, render_instructions

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r'```(?:json)?\s*(.*?)\s*```', re.DOTALL | re.IGNORECASE)


def extract_json(text: str) -> Any:
    """Parses the JSON payload of a model reply, preferring a fenced ```json block."""
    json_match = _JSON_BLOCK.search(text)
    payload = json_match.group(1).strip() if json_match else text.strip()
    if not payload:
        raise ValueError("Response does not contain a JSON payload.")
    return json.loads(payload)


class GenerationClient:
    def __init__(self, model: str = DEFAULT_MODEL, timeout_seconds: Optional[float] = 60.0, runner=Runner):
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.runner = runner

    @classmethod
    def from_settings(cls, settings: Settings, runner=Runner) -> "GenerationClient":
        return cls(model=settings.model, timeout_seconds=settings.timeout_seconds, runner=runner)

    def build_agent(self, spec: PromptSpec, shape: OutputShape) -> Agent:
        model_settings = ModelSettings(temperature=spec.temperature) if spec.temperature is not None else ModelSettings()
        return Agent(
            name=f"Survey Panel {shape.name}",
            instructions=render_instructions(spec, shape),
            model=self.model,
            model_settings=model_settings,
        )

    async def generate(self, spec: PromptSpec, shape: OutputShape) -> Any:
        """Returns data validated against ``shape`` or raises GenerationFailure."""
        agent = self.build_agent(spec, shape)
        try:
            run = self.runner.run(agent, spec.prompt)
            if self.timeout_seconds:
                result = await asyncio.wait_for(run, timeout=self.timeout_seconds)
            else:
                result = await run
        except asyncio.TimeoutError as e:
            raise GenerationFailure(
                f"{shape.name}: no response within {self.timeout_seconds}s", shape=shape.name
            ) from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise GenerationFailure(f"{shape.name}: generation call failed: {e}", shape=shape.name) from e

        text = getattr(result, "final_output", None)
        if not isinstance(text, str) or not text.strip():
            raise GenerationFailure(f"{shape.name}: no response text", shape=shape.name)

        try:
            data = extract_json(text)
        except (json.JSONDecodeError, ValueError) as e:
            logger.debug("Raw response snippet: %s", text[:500])
            raise GenerationFailure(f"{shape.name}: response is not valid JSON: {e}", shape=shape.name) from e

        try:
            return shape.validate(data)
        except ValidationError as e:
            raise GenerationFailure(
                f"{shape.name}: response does not match the expected structure: {e.error_count()} error(s)",
                shape=shape.name,
            ) from e
