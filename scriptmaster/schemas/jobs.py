from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


class PipelineStatus(str, Enum):
    IDLE = "idle"
    GENERATING_PROMPTS = "generatingPrompts"
    GENERATING_IMAGES = "generatingImages"
    COMPLETED = "completed"
    ERROR = "error"


class ImageGenerationJob(BaseModel):
    """One render request for a (scene, run) pair."""
    id: str = Field(..., description="'<scene_id>-<run_index>'")
    scene_id: int
    run_index: int = 0
    prompt: str
    status: JobStatus = JobStatus.PENDING
    image_url: Optional[str] = Field(None, description="data: URI of the rendered image")
    error: Optional[str] = None


class RenderSnapshot(BaseModel):
    """Read-only view of the scheduler handed to observers."""
    status: PipelineStatus
    error: Optional[str] = None
    cursor: int = 0
    jobs: List[ImageGenerationJob] = Field(default_factory=list)
