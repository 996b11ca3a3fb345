import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_MODEL = "gpt-4.1"


class Settings(BaseModel):
    model: str = DEFAULT_MODEL
    timeout_seconds: float = Field(default=60.0, gt=0)
    persona_temperature: float = Field(default=0.7, ge=0, le=2)
    data_dir: Path = Path.home() / ".survey_panel"
    output_dir: Path = Path("simulations") / "survey"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Reads settings from the environment, loading a .env file first."""
        if dotenv:
            load_dotenv()
        values = {
            "model": os.getenv("SURVEY_PANEL_MODEL"),
            "timeout_seconds": os.getenv("SURVEY_PANEL_TIMEOUT"),
            "persona_temperature": os.getenv("SURVEY_PANEL_PERSONA_TEMPERATURE"),
            "data_dir": os.getenv("SURVEY_PANEL_DATA_DIR"),
            "output_dir": os.getenv("SURVEY_PANEL_OUTPUT_DIR"),
            "log_level": os.getenv("SURVEY_PANEL_LOG_LEVEL"),
        }
        settings = cls(**{key: value for key, value in values.items() if value})
        settings.data_dir = settings.data_dir.expanduser()
        return settings

    @staticmethod
    def has_api_key() -> bool:
        return bool(os.getenv("OPENAI_API_KEY"))
