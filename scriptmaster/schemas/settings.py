from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Literal, Optional

AspectRatio = Literal["16:9", "9:16", "4:3", "3:4", "1:1"]
VisualStyle = Literal["cinematic", "realistic", "anime", "CGI", "medieval", "historical", "documentary"]


class GenerationSettings(BaseModel):
    """Pacing and run options for one render pass. Frozen once a pass starts."""
    model_config = ConfigDict(frozen=True)

    wait_time_mode: Literal["fixed", "random"] = "fixed"
    fixed_wait_time: float = Field(default=2, ge=0, description="Seconds between jobs (fixed mode)")
    random_wait_time_min: float = Field(default=2, ge=0)
    random_wait_time_max: float = Field(default=5, ge=0)
    auto_download: bool = False
    runs_per_prompt: int = Field(default=1, ge=1)
    start_from_prompt: int = Field(default=1, ge=1, description="1-based index of the first prompt to render")
    generate_images: bool = True

    @model_validator(mode="after")
    def _check_random_range(self) -> "GenerationSettings":
        if self.random_wait_time_max < self.random_wait_time_min:
            raise ValueError("random_wait_time_max must be >= random_wait_time_min")
        return self


class ReferenceImage(BaseModel):
    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str = "image/jpeg"


class PlanRequest(BaseModel):
    """The content and style inputs for generating a scene plan."""
    script: str
    num_scenes: Optional[int] = Field(None, ge=1, description="Explicit scene count; auto when unset")
    niche: str = ""
    visual_style: VisualStyle = "cinematic"
    style_keywords: str = ""
    aspect_ratio: AspectRatio = "16:9"
    reference_image: Optional[ReferenceImage] = None


class ScriptStats(BaseModel):
    words: int
    chars: int
    paragraphs: int
