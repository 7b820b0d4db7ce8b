from .plan import Character, ContinuationContext, Scene, ScriptPlan
from .jobs import ImageGenerationJob, JobStatus, PipelineStatus, RenderSnapshot
from .settings import AspectRatio, GenerationSettings, PlanRequest, ReferenceImage, ScriptStats, VisualStyle
from .state import PipelineState

__all__ = [
    "Character", "ContinuationContext", "Scene", "ScriptPlan",
    "ImageGenerationJob", "JobStatus", "PipelineStatus", "RenderSnapshot",
    "PipelineState",
    "AspectRatio", "GenerationSettings", "PlanRequest", "ReferenceImage", "ScriptStats", "VisualStyle",
]
