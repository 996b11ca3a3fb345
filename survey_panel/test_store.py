import json

from survey_panel.models import Persona, Question, QuestionType, Survey
from survey_panel.store import LIBRARY_KEY, TEMPLATES_KEY, JsonStore, PersonaLibrary, TemplateStore

SURVEY = Survey(
    title="Commute habits",
    description="How people get to work.",
    questions=[
        Question(id="q1", text="How do you commute?", type=QuestionType.MULTIPLE_CHOICE, options=["Car", "Bike", "Train"]),
        Question(id="q2", text="How stressful is it?", type=QuestionType.RATING_SCALE),
    ],
)


def persona(persona_id, name):
    return Persona(id=persona_id, name=name, age=30, occupation="Analyst", traits="Calm", painPoints="Traffic")


def test_template_round_trip(tmp_path):
    templates = TemplateStore(JsonStore(tmp_path))
    saved = templates.save("Commute v1", SURVEY)

    reopened = TemplateStore(JsonStore(tmp_path))
    assert [t.id for t in reopened.list()] == [saved.id]
    assert reopened.load(saved.id) == SURVEY
    assert reopened.get(saved.id).name == "Commute v1"


def test_loaded_template_is_an_independent_copy(tmp_path):
    templates = TemplateStore(JsonStore(tmp_path))
    saved = templates.save("Commute v1", SURVEY)
    loaded = templates.load(saved.id)
    loaded.questions[0].text = "Edited"
    assert templates.load(saved.id).questions[0].text == "How do you commute?"
    assert SURVEY.questions[0].text == "How do you commute?"


def test_delete_template(tmp_path):
    templates = TemplateStore(JsonStore(tmp_path))
    first = templates.save("one", SURVEY)
    second = templates.save("two", SURVEY)
    assert templates.delete(first.id)
    assert not templates.delete(first.id)
    assert [t.id for t in templates.list()] == [second.id]
    assert templates.load("missing") is None


def test_corrupt_files_read_as_empty(tmp_path):
    (tmp_path / f"{TEMPLATES_KEY}.json").write_text("{not json", encoding="utf-8")
    (tmp_path / f"{LIBRARY_KEY}.json").write_text(json.dumps([{"name": "no id"}]), encoding="utf-8")
    store = JsonStore(tmp_path)
    assert TemplateStore(store).list() == []
    assert PersonaLibrary(store).list() == []


def test_missing_directory_reads_as_empty(tmp_path):
    store = JsonStore(tmp_path / "does" / "not" / "exist")
    assert PersonaLibrary(store).list() == []
    assert store.read("anything", default={"a": 1}) == {"a": 1}


def test_writes_leave_no_temporary_files(tmp_path):
    store = JsonStore(tmp_path / "data")
    library = PersonaLibrary(store)
    library.save(persona("p1", "Ana"))
    library.save(persona("p2", "Ben"))
    assert sorted(p.name for p in (tmp_path / "data").iterdir()) == ["library.json"]
    stored = json.loads((tmp_path / "data" / "library.json").read_text(encoding="utf-8"))
    assert stored[0]["painPoints"] == "Traffic"


def test_library_upserts_by_id_and_keeps_order(tmp_path):
    library = PersonaLibrary(JsonStore(tmp_path))
    library.save_many([persona("p1", "Ana"), persona("p2", "Ben")])
    library.save(persona("p1", "Ana Updated"))
    library.save(persona("p3", "Cy"))
    assert [(p.id, p.name) for p in library.list()] == [("p1", "Ana Updated"), ("p2", "Ben"), ("p3", "Cy")]

    assert library.remove("p2")
    assert not library.remove("p2")
    assert library.get("p2") is None


def test_library_holds_copies(tmp_path):
    library = PersonaLibrary(JsonStore(tmp_path))
    original = persona("p1", "Ana")
    library.save(original)
    original.name = "Changed after saving"
    assert library.get("p1").name == "Ana"


def test_add_to_panel(tmp_path):
    library = PersonaLibrary(JsonStore(tmp_path))
    library.save_many([persona("lib1", "Dee"), persona("p1", "Ana from library")])
    panel = [persona("p1", "Ana")]

    updated = library.add_to_panel(panel, ["lib1", "p1", "unknown"])
    assert [p.id for p in updated] == ["p1", "lib1"]
    assert updated[0].name == "Ana"
    assert panel == [persona("p1", "Ana")]

    updated[1].name = "Edited on panel"
    assert library.get("lib1").name == "Dee"


def test_add_to_panel_warns_about_id_already_on_panel(tmp_path, caplog):
    library = PersonaLibrary(JsonStore(tmp_path))
    library.save(persona("p1", "Ana from library"))

    with caplog.at_level("WARNING", logger="survey_panel.store"):
        updated = library.add_to_panel([persona("p1", "Generated Ana")], ["p1"])

    assert [p.name for p in updated] == ["Generated Ana"]
    assert "already on the panel" in caplog.text
