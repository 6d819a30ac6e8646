"""Settings models and YAML loading."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ClassifierSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    char_budget: int = Field(default=6000, gt=0)


class LlmSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)


class QuestionnaireSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    llm_questions: bool = True


class AppSettings(BaseModel):
    """Runtime settings loaded from YAML."""

    model_config = ConfigDict(extra="forbid")

    context_window: int = Field(default=400, ge=0)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    questionnaire: QuestionnaireSettings = Field(default_factory=QuestionnaireSettings)


def load_settings(path: Path | None = None) -> AppSettings:
    """Load and validate settings from YAML; defaults to the bundled settings.yaml."""

    settings_path = path or Path(__file__).with_name("settings.yaml")

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        return AppSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc
