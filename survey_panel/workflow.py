"""
The state of one survey run and the pipeline that drives it.

``SurveyRun`` is an explicit state machine over the steps
SETUP -> PERSONAS -> SIMULATION -> RESULTS. It only changes through its event
methods, and an event sent in the wrong step raises InvalidTransition.
``SurveyPipeline`` runs persona generation, simulation and analysis against a
GenerationClient and feeds the outcomes into the run as events.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from survey_panel.aggregator import FrequencyTable, aggregate, tabulate
from survey_panel.errors import AnalysisFailure, InvalidTransition
from survey_panel.generation import GenerationClient
from survey_panel.models import AnalysisResult, Persona, Survey, SurveyResponse, TargetAudience
from survey_panel.personas import generate_personas
from survey_panel.simulator import CancelToken, SimulationOutcome, SimulationProgress, simulate

logger = logging.getLogger(__name__)


class Step(str, Enum):
    SETUP = "SETUP"
    PERSONAS = "PERSONAS"
    SIMULATION = "SIMULATION"
    RESULTS = "RESULTS"


class SurveyRun:
    def __init__(self, survey: Survey):
        self.survey = survey
        self.step = Step.SETUP
        self.panel: List[Persona] = []
        self.responses: List[SurveyResponse] = []
        self.progress: float = 0.0
        self.failures: int = 0
        self.simulation_finished = False
        self.analysis: Optional[AnalysisResult] = None
        self.error: Optional[str] = None

    def _require(self, event: str, *steps: Step):
        if self.step not in steps:
            raise InvalidTransition(event, self.step)

    # --- Events ---

    def survey_ready(self, survey: Optional[Survey] = None):
        self._require("survey_ready", Step.SETUP)
        if survey is not None:
            self.survey = survey
        self.step = Step.PERSONAS

    def back_to_setup(self):
        self._require("back_to_setup", Step.PERSONAS)
        self.step = Step.SETUP

    def personas_generated(self, panel: Sequence[Persona]):
        self._require("personas_generated", Step.PERSONAS)
        self.panel = [p.copy_with_id() for p in panel]

    def panel_updated(self, panel: Sequence[Persona]):
        self._require("panel_updated", Step.PERSONAS)
        self.panel = [p.copy_with_id() for p in panel]

    def simulation_started(self):
        self._require("simulation_started", Step.PERSONAS, Step.SIMULATION, Step.RESULTS)
        if not self.panel:
            raise InvalidTransition("simulation_started", self.step)
        # Results of a previous run are discarded, never merged
        self.responses = []
        self.progress = 0.0
        self.failures = 0
        self.simulation_finished = False
        self.analysis = None
        self.error = None
        self.step = Step.SIMULATION

    def simulation_progressed(self, progress: SimulationProgress):
        self._require("simulation_progressed", Step.SIMULATION)
        if progress.response is not None:
            self.responses.append(progress.response)
        self.progress = progress.percent

    def simulation_completed(self, outcome: SimulationOutcome):
        self._require("simulation_completed", Step.SIMULATION)
        self.responses = list(outcome.responses)
        self.failures = outcome.failures
        self.simulation_finished = True

    def analysis_completed(self, result: AnalysisResult):
        self._require("analysis_completed", Step.SIMULATION)
        if not self.simulation_finished:
            raise InvalidTransition("analysis_completed", self.step)
        self.analysis = result
        self.error = None
        self.step = Step.RESULTS

    def analysis_failed(self, error: Exception):
        self._require("analysis_failed", Step.SIMULATION)
        self.error = str(error)

    def reset(self):
        self.step = Step.SETUP
        self.panel = []
        self.responses = []
        self.progress = 0.0
        self.failures = 0
        self.simulation_finished = False
        self.analysis = None
        self.error = None

    # --- Derived views ---

    @property
    def can_analyze(self) -> bool:
        return self.step == Step.SIMULATION and self.simulation_finished and bool(self.responses)

    def tabulations(self) -> Dict[str, FrequencyTable]:
        return tabulate(self.survey, self.responses)


class SurveyPipeline:
    """Drives a SurveyRun through generation, simulation and analysis."""

    def __init__(self, client: GenerationClient, persona_temperature: Optional[float] = 0.7):
        self.client = client
        self.persona_temperature = persona_temperature

    async def generate_panel(self, run: SurveyRun, audience: TargetAudience) -> List[Persona]:
        if run.step == Step.SETUP:
            run.survey_ready()
        personas = await generate_personas(self.client, audience, temperature=self.persona_temperature)
        run.personas_generated(personas)
        return run.panel

    async def run_simulation(
        self,
        run: SurveyRun,
        on_progress: Optional[Callable[[SimulationProgress], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> SurveyRun:
        """
        Simulates the whole panel, then analyzes the results if any came back.

        Raises AnalysisFailure if the analysis step fails; the run then stays
        in SIMULATION and ``retry_analysis`` may be called.
        """
        run.simulation_started()

        def progressed(progress: SimulationProgress):
            run.simulation_progressed(progress)
            if on_progress is not None:
                on_progress(progress)

        outcome = await simulate(run.panel, run.survey, self.client, on_progress=progressed, cancel=cancel)
        run.simulation_completed(outcome)

        if not run.responses:
            logger.warning("No persona produced a response; skipping analysis")
            return run
        await self.analyze(run)
        return run

    async def analyze(self, run: SurveyRun) -> AnalysisResult:
        if not run.can_analyze:
            raise InvalidTransition("analyze", run.step)
        try:
            result = await aggregate(run.survey, run.responses, run.panel, self.client)
        except AnalysisFailure as e:
            run.analysis_failed(e)
            raise
        run.analysis_completed(result)
        return result

    async def retry_analysis(self, run: SurveyRun) -> AnalysisResult:
        """Operator-initiated retry of the analysis step only."""
        return await self.analyze(run)
