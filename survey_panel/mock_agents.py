"""
Mock Runner implementation for testing the survey panel without API calls.
"""

import json
from typing import Any, Callable, List, Optional, Union


class Result:
    def __init__(self, output):
        self.final_output = output


def fenced(data: Any) -> str:
    """Wraps data in a ```json block the way models usually reply."""
    return f"```json\n{json.dumps(data, indent=2)}\n```"


MOCK_PERSONAS = [
    {"id": "p1", "name": "Maya Chen", "age": 34, "occupation": "Freelance UX Designer",
     "traits": "Organized, curious, impatient", "painPoints": "Juggling client deadlines across tools"},
    {"id": "p2", "name": "Tom Okafor", "age": 41, "occupation": "Remote Project Manager",
     "traits": "Methodical, skeptical", "painPoints": "Too many notifications, status meetings"},
]

MOCK_ANALYSIS = {
    "summary": "Respondents struggle to keep tasks organized across projects.",
    "keyInsights": ["Context switching is the main frustration", "Existing apps feel cluttered"],
    "sentiment": "Neutral",
    "featureSuggestions": ["Unified inbox for tasks", "Focus mode that mutes notifications"],
}

Reply = Union[str, Exception, Callable[[Any, str], Any]]


class MockRunner:
    """
    Stands in for ``agents.Runner``.

    Replies are consumed in call order. A reply is returned as the final
    output when it is a string, raised when it is an exception, and called
    with (agent, prompt) when it is a callable.
    """

    def __init__(self, replies: Optional[List[Reply]] = None, default: Optional[Reply] = None):
        self.replies = list(replies or [])
        self.default = default
        self.calls = []

    async def run(self, agent, prompt, context=None):
        self.calls.append((agent, prompt))
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise RuntimeError(f"Mock runner has no reply left for agent '{agent.name}'")

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(agent, prompt)
        return Result(reply)


def answer_all(answer: str) -> Callable[[Any, str], str]:
    """Reply that answers every question listed in the prompt with the same value."""
    def reply(agent, prompt):
        ids = [line.split(".")[0][len("ID: "):] for line in prompt.splitlines() if line.startswith("ID: ")]
        return fenced({"answers": [{"questionId": q_id, "answer": answer} for q_id in ids]})
    return reply
