from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, List


class Character(BaseModel):
    name: str
    description: str = ""


class Scene(BaseModel):
    """One unit of the script; renders to zero or one image per run."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str = ""
    description: str = ""
    camera_angle: str = ""
    lighting: str = ""
    visual_prompt: str = Field(..., description="Detailed, cinematic image prompt")
    generate_image: bool = True


class ScriptPlan(BaseModel):
    """Structured scene plan produced from a script (or one chunk of it)."""
    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(
        default="",
        validation_alias=AliasChoices("summary", "script"),
        description="The generated script or a summary of it",
    )
    characters: List[Character] = Field(default_factory=list)
    style: str = Field(default="", description="The applied global visual style")
    scenes: List[Scene] = Field(default_factory=list)

    @field_validator("characters", mode="before")
    @classmethod
    def _characters_from_map(cls, value: Any) -> Any:
        # The model sometimes answers with {"Name": "description"} instead of a list
        if isinstance(value, dict):
            return [
                {"name": name, "description": desc if isinstance(desc, str) else str(desc)}
                for name, desc in value.items()
            ]
        return value

    @property
    def image_scenes(self) -> List[Scene]:
        return [s for s in self.scenes if s.generate_image]


class ContinuationContext(BaseModel):
    """What later chunks must reuse from the chunks already generated."""
    style: str
    characters: List[Character] = Field(default_factory=list)

    @classmethod
    def from_plan(cls, plan: ScriptPlan) -> "ContinuationContext":
        return cls(style=plan.style, characters=list(plan.characters))
