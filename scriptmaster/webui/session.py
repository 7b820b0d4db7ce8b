"""Session lifecycle for the web UI: one pipeline, background plan runs, SSE fan-out."""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import AsyncIterator

from ..config import Config
from ..errors import PipelineBusy, ScriptMasterError, ScriptValidationError
from ..pipeline import Pipeline
from ..schemas import GenerationSettings, PipelineState, PipelineStatus, PlanRequest

log = logging.getLogger(__name__)


class Session:
    def __init__(self) -> None:
        self._pipeline: Pipeline | None = None
        self._queues: set[asyncio.Queue] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()
        self.use_placeholders = False

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    # ------------------------------------------------------------------
    # Pipeline access
    # ------------------------------------------------------------------

    @property
    def pipeline(self) -> Pipeline:
        with self._lock:
            if self._pipeline is None:
                self._attach(Pipeline(
                    Config.load(),
                    progress_cb=self._progress,
                    use_placeholders=self.use_placeholders,
                ))
            return self._pipeline

    def configure(self, pipeline: Pipeline | None = None, use_placeholders: bool | None = None) -> None:
        """Swap in a pipeline (or drop the current one so the next access reloads config)."""
        with self._lock:
            if use_placeholders is not None:
                self.use_placeholders = use_placeholders
            if self._pipeline is not None:
                self._pipeline.reset()
            self._pipeline = None
            if pipeline is not None:
                pipeline.progress_cb = self._progress
                self._attach(pipeline)

    def _attach(self, pipeline: Pipeline) -> None:
        self._pipeline = pipeline
        pipeline.subscribe(self._on_state)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit_plan(self, request: PlanRequest, settings: GenerationSettings) -> None:
        """Validate, then generate the plan on a background thread."""
        pipeline = self.pipeline
        if not request.script.strip():
            raise ScriptValidationError("Content cannot be empty.")
        if pipeline.status in (PipelineStatus.GENERATING_PROMPTS, PipelineStatus.GENERATING_IMAGES):
            raise PipelineBusy(f"Pipeline is busy ({pipeline.status.value}).")
        pipeline.connect()

        def _run() -> None:
            try:
                pipeline.generate_plan(request, settings)
            except ScriptMasterError as e:
                log.warning("Plan generation failed: %s", e)
            except Exception:
                log.exception("Plan generation crashed")

        threading.Thread(target=_run, daemon=True, name="plan-generator").start()

    def start_render(self, settings: GenerationSettings) -> None:
        self.pipeline.start_rendering(settings, background=True)

    def state(self) -> PipelineState:
        return self.pipeline.state()

    async def stream(self) -> AsyncIterator[dict]:
        """Async generator: current state first, then every update as it happens."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        try:
            yield {"type": "state", "state": self.state().model_dump(mode="json")}
            while True:
                yield await queue.get()
        finally:
            self._queues.discard(queue)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _push(self, msg: dict) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        for queue in list(self._queues):
            loop.call_soon_threadsafe(queue.put_nowait, msg)

    def _progress(self, text: str) -> None:
        log.info(text)
        self._push({"type": "log", "text": text, "ts": time.time()})

    def _on_state(self, state: PipelineState) -> None:
        self._push({"type": "state", "state": state.model_dump(mode="json")})


# Singleton
session = Session()
