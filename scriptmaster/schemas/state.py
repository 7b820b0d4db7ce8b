from pydantic import BaseModel, Field
from typing import List, Optional

from .jobs import ImageGenerationJob, PipelineStatus
from .plan import ScriptPlan


class PipelineState(BaseModel):
    """Everything a UI needs to draw the current session."""
    status: PipelineStatus = PipelineStatus.IDLE
    error: Optional[str] = None
    plan: Optional[ScriptPlan] = None
    jobs: List[ImageGenerationJob] = Field(default_factory=list)
    cursor: int = 0
    images_today: int = 0
