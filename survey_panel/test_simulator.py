import asyncio

from survey_panel.aggregator import tabulate
from survey_panel.generation import GenerationClient
from survey_panel.mock_agents import MockRunner, answer_all, fenced
from survey_panel.models import Persona, Question, QuestionType, RatingAnswer, Survey, TextAnswer
from survey_panel.simulator import CancelToken, simulate

RATING_SURVEY = Survey(
    title="Task organization",
    description="How people organize their work.",
    questions=[Question(id="q1", text="How often do you struggle?", type=QuestionType.RATING_SCALE)],
)


def make_panel(n):
    return [Persona(id=f"p{i}", name=f"Person {i}", age=30 + i, occupation="Engineer") for i in range(1, n + 1)]


def run_simulation(panel, survey, replies, cancel=None, on_each=None):
    client = GenerationClient(runner=MockRunner(replies), timeout_seconds=5)
    updates = []

    def on_progress(progress):
        updates.append(progress)
        if on_each is not None:
            on_each(progress)

    outcome = asyncio.run(simulate(panel, survey, client, on_progress=on_progress, cancel=cancel))
    return outcome, updates


def test_one_success_one_failure():
    panel = make_panel(2)
    replies = [
        fenced({"answers": [{"questionId": "q1", "answer": "5"}]}),
        RuntimeError("service unavailable"),
    ]
    outcome, updates = run_simulation(panel, RATING_SURVEY, replies)

    assert len(outcome.responses) == 1
    assert outcome.responses[0].persona_id == "p1"
    assert outcome.responses[0].answer_for("q1") == RatingAnswer(value=5)
    assert outcome.failures == 1
    assert updates[-1].percent == 100.0
    assert tabulate(RATING_SURVEY, outcome.responses) == {"q1": {1: 0, 2: 0, 3: 0, 4: 0, 5: 1}}


def test_progress_updates_once_per_persona():
    panel = make_panel(5)
    replies = [answer_all("4"), "", answer_all("2"), RuntimeError("boom"), answer_all("oops")]
    outcome, updates = run_simulation(panel, RATING_SURVEY, replies)

    percents = [u.percent for u in updates]
    assert len(percents) == 5
    assert all(a < b for a, b in zip(percents, percents[1:]))
    assert percents[-1] == 100.0
    assert [u.persona.id for u in updates] == ["p1", "p2", "p3", "p4", "p5"]
    assert [r.persona_id for r in outcome.responses] == ["p1", "p3", "p5"]
    assert outcome.responses[-1].answer_for("q1") == RatingAnswer(value=3)
    assert outcome.failures == 2


def test_all_failures_never_raise():
    panel = make_panel(3)
    outcome, updates = run_simulation(panel, RATING_SURVEY, [RuntimeError("down")] * 3)
    assert outcome.responses == []
    assert outcome.failures == 3
    assert len(updates) == 3
    assert updates[-1].percent == 100.0


def test_empty_panel():
    outcome, updates = run_simulation([], RATING_SURVEY, [])
    assert outcome.responses == []
    assert outcome.failures == 0
    assert updates == []


def test_personas_run_sequentially_in_panel_order():
    panel = make_panel(3)
    runner = MockRunner(default=answer_all("3"))
    client = GenerationClient(runner=runner, timeout_seconds=5)
    asyncio.run(simulate(panel, RATING_SURVEY, client))
    names = [agent.instructions.split("Name: ")[1].splitlines()[0] for agent, _ in runner.calls]
    assert names == ["Person 1", "Person 2", "Person 3"]


def test_unknown_and_repeated_answers_are_dropped():
    survey = Survey(title="Mixed", questions=[
        Question(id="q1", text="Rate it", type=QuestionType.RATING_SCALE),
        Question(id="q2", text="Pick one", type=QuestionType.MULTIPLE_CHOICE, options=["A", "B"]),
    ])
    reply = fenced({"answers": [
        {"questionId": "q2", "answer": "C"},
        {"questionId": "q9", "answer": "whatever"},
        {"questionId": "q1", "answer": 4},
        {"questionId": "q1", "answer": "1"},
    ]})
    outcome, _ = run_simulation(make_panel(1), survey, [reply])
    response = outcome.responses[0]
    assert [a.question_id for a in response.answers] == ["q2", "q1"]
    assert response.answer_for("q2") == TextAnswer(value="C")
    assert response.answer_for("q1") == RatingAnswer(value=4)


def test_cancel_stops_between_personas():
    token = CancelToken()
    panel = make_panel(4)

    def cancel_after_second(progress):
        if progress.completed == 2:
            token.cancel()

    outcome, updates = run_simulation(panel, RATING_SURVEY, [answer_all("4")] * 4, cancel=token, on_each=cancel_after_second)
    assert outcome.cancelled
    assert len(updates) == 2
    assert len(outcome.responses) == 2


def test_malformed_rating_keeps_the_rest_of_the_response():
    survey = Survey(title="Mixed", questions=[
        Question(id="q1", text="Rate it", type=QuestionType.RATING_SCALE),
        Question(id="q2", text="Why?", type=QuestionType.OPEN_ENDED),
    ])
    replies = [
        fenced({"answers": [{"questionId": "q1", "answer": None}, {"questionId": "q2", "answer": "fine"}]}),
        fenced({"answers": [{"questionId": "q1", "answer": True}, {"questionId": "q2", "answer": "ok"}]}),
        fenced({"answers": [{"questionId": "q1", "answer": 4.0}, {"questionId": "q2"}]}),
    ]
    outcome, _ = run_simulation(make_panel(3), survey, replies)

    assert outcome.failures == 0
    first, second, third = outcome.responses
    assert first.answer_for("q1") == RatingAnswer(value=3)
    assert first.answer_for("q2") == TextAnswer(value="fine")
    assert second.answer_for("q1") == RatingAnswer(value=3)
    assert second.answer_for("q2") == TextAnswer(value="ok")
    assert third.answer_for("q1") == RatingAnswer(value=4)
    assert third.answer_for("q2") == TextAnswer(value="")


def test_numeric_question_ids_are_matched():
    survey = Survey(title="Numbered", questions=[Question(id="1", text="Rate it", type=QuestionType.RATING_SCALE)])
    outcome, _ = run_simulation(make_panel(1), survey, [fenced({"answers": [{"questionId": 1, "answer": "5"}]})])
    assert outcome.responses[0].answer_for("1") == RatingAnswer(value=5)
