class SurveyPanelError(Exception):
    """Base class for errors raised by the survey panel pipeline."""


class GenerationFailure(SurveyPanelError):
    """
    A generation call did not produce usable structured data.

    Service errors, timeouts, empty output, malformed JSON and schema
    validation errors all surface as this one kind; the original exception
    is chained as ``__cause__``.
    """

    def __init__(self, message: str, shape: str = ""):
        super().__init__(message)
        self.shape = shape


class AnalysisFailure(SurveyPanelError):
    """The narrative analysis of a completed simulation could not be produced."""


class InvalidTransition(SurveyPanelError):
    """An event was sent to a survey run in a step that does not accept it."""

    def __init__(self, event: str, step):
        super().__init__(f"Event '{event}' is not allowed in step {step.value}")
        self.event = event
        self.step = step
