"""Exception types shared across the plan and render stages."""
from __future__ import annotations

QUOTA_MARKER = "quota exceeded"
SAFETY_MARKER = "filtered"


class ScriptMasterError(Exception):
    pass


class ConfigurationError(ScriptMasterError):
    """Missing credential or unusable settings; raised before any network call."""


class ScriptValidationError(ScriptMasterError):
    """Empty script or prompt; raised before any network call."""


class PlanGenerationError(ScriptMasterError):
    """The text model call failed or returned something that isn't a plan."""


class ChunkGenerationError(PlanGenerationError):
    def __init__(self, chunk_index: int, total: int, cause: Exception | str):
        self.chunk_index = chunk_index
        self.total = total
        self.cause = cause
        super().__init__(f"Failed to generate plan for chunk {chunk_index}/{total}: {cause}")


class RenderError(ScriptMasterError):
    """A single image job failed. The scheduler records it and moves on."""


class SafetyFilterError(RenderError):
    pass


class NothingToRender(ScriptMasterError):
    """The job queue is empty; there is nothing for the scheduler to do."""


class PipelineBusy(ScriptMasterError):
    pass


class PipelineCancelled(ScriptMasterError):
    pass


def is_quota_exhausted(message: str | None) -> bool:
    """True when an upstream failure message means the usage quota ran out.

    The image API only reports this as free text, so this is a substring
    match. Keep every quota check going through here.
    """
    return bool(message) and QUOTA_MARKER in message.lower()


def is_safety_filtered(message: str | None) -> bool:
    return bool(message) and SAFETY_MARKER in message.lower()
