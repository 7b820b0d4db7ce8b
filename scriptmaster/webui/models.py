"""Pydantic request/response models for the ScriptMaster Web API."""
from __future__ import annotations

from pydantic import BaseModel, Field

from ..schemas import GenerationSettings, PlanRequest


class PlanSubmit(BaseModel):
    request: PlanRequest
    settings: GenerationSettings = Field(default_factory=GenerationSettings)


class ScriptPayload(BaseModel):
    script: str = ""


class SceneSuggestion(BaseModel):
    num_scenes: int


class ConfigPayload(BaseModel):
    gemini_api_key: str = ""
    output_dir: str = "output"
    text_model: str = "gemini-2.5-flash"
    image_model: str = "imagen-4.0-generate-001"
    max_words_per_chunk: int = Field(default=1500, ge=1)


class ExportResult(BaseModel):
    paths: list[str] = Field(default_factory=list)
