"""
Durable storage for the persona library and saved survey templates.

Each key lives in its own JSON file. Writes go to a temporary file in the
same directory which is then moved over the target with ``os.replace``, so a
reader sees either the previous or the new content. A missing, unreadable or
unparsable file reads as empty.
"""

import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import TypeAdapter, ValidationError

from survey_panel.models import Persona, Survey, SurveyTemplate

logger = logging.getLogger(__name__)

LIBRARY_KEY = "library"
TEMPLATES_KEY = "templates"


class JsonStore:
    def __init__(self, directory):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str, default: Any = None) -> Any:
        path = self.path_for(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}, treating it as empty: {e}")
            return default

    def write(self, key: str, value: Any) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        content = json.dumps(value, indent=2, default=str)

        fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=f"{key}_", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug(f"Saved {key} to {path}")
        return path


_PERSONAS = TypeAdapter(List[Persona])
_TEMPLATES = TypeAdapter(List[SurveyTemplate])


class PersonaLibrary:
    """User-curated personas kept across runs. Holds copies, never panel instances."""

    def __init__(self, store: JsonStore):
        self.store = store

    def list(self) -> List[Persona]:
        raw = self.store.read(LIBRARY_KEY, default=[])
        try:
            return _PERSONAS.validate_python(raw)
        except ValidationError as e:
            logger.warning(f"Persona library is malformed, treating it as empty: {e.error_count()} error(s)")
            return []

    def get(self, persona_id: str) -> Optional[Persona]:
        for persona in self.list():
            if persona.id == persona_id:
                return persona
        return None

    def _write(self, personas: List[Persona]):
        self.store.write(LIBRARY_KEY, [p.model_dump(by_alias=True) for p in personas])

    def save_many(self, personas: Iterable[Persona]) -> List[Persona]:
        """Adds or replaces personas by id, keeping library order for existing entries."""
        library = self.list()
        index = {p.id: i for i, p in enumerate(library)}
        for persona in personas:
            copy = persona.copy_with_id()
            if copy.id in index:
                library[index[copy.id]] = copy
            else:
                index[copy.id] = len(library)
                library.append(copy)
        self._write(library)
        return library

    def save(self, persona: Persona) -> List[Persona]:
        return self.save_many([persona])

    def remove(self, persona_id: str) -> bool:
        library = self.list()
        remaining = [p for p in library if p.id != persona_id]
        if len(remaining) == len(library):
            return False
        self._write(remaining)
        return True

    def add_to_panel(self, panel: List[Persona], persona_ids: Iterable[str]) -> List[Persona]:
        """Returns a new panel with copies of the given library personas appended."""
        by_id = {p.id: p for p in self.list()}
        result = [p.copy_with_id() for p in panel]
        on_panel = {p.id for p in result}
        for persona_id in persona_ids:
            persona = by_id.get(persona_id)
            if persona is None:
                logger.warning(f"Persona '{persona_id}' is not in the library")
                continue
            if persona_id in on_panel:
                logger.warning(f"Persona '{persona_id}' is already on the panel, library copy not added")
                continue
            result.append(persona.copy_with_id())
            on_panel.add(persona_id)
        return result


class TemplateStore:
    def __init__(self, store: JsonStore):
        self.store = store

    def list(self) -> List[SurveyTemplate]:
        raw = self.store.read(TEMPLATES_KEY, default=[])
        try:
            return _TEMPLATES.validate_python(raw)
        except ValidationError as e:
            logger.warning(f"Template store is malformed, treating it as empty: {e.error_count()} error(s)")
            return []

    def save(self, name: str, survey: Survey) -> SurveyTemplate:
        template = SurveyTemplate(id=uuid.uuid4().hex, name=name, survey=survey.model_copy(deep=True))
        templates = self.list()
        templates.append(template)
        self.store.write(TEMPLATES_KEY, [t.model_dump(mode="json") for t in templates])
        return template

    def get(self, template_id: str) -> Optional[SurveyTemplate]:
        for template in self.list():
            if template.id == template_id:
                return template
        return None

    def load(self, template_id: str) -> Optional[Survey]:
        template = self.get(template_id)
        return template.survey.model_copy(deep=True) if template else None

    def delete(self, template_id: str) -> bool:
        templates = self.list()
        remaining = [t for t in templates if t.id != template_id]
        if len(remaining) == len(templates):
            return False
        self.store.write(TEMPLATES_KEY, [t.model_dump(mode="json") for t in remaining])
        return True
