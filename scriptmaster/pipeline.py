"""Pipeline session: owns the process-wide status, the current plan and its jobs."""
from __future__ import annotations

import logging
import threading
from functools import partial
from pathlib import Path
from typing import Any, Callable

from .config import Config
from .errors import (
    NothingToRender,
    PipelineBusy,
    PipelineCancelled,
    ScriptValidationError,
)
from .export import download_all, save_job_image, save_plan
from .imagegen import make_render_fn, render_placeholder
from .jobs import build_jobs
from .scheduler import RenderScheduler
from .schemas import (
    GenerationSettings,
    ImageGenerationJob,
    PipelineState,
    PipelineStatus,
    PlanRequest,
    RenderSnapshot,
    ScriptPlan,
)
from .scriptgen import generate_plan
from .usage import DailyUsageCounter
from .utils.gemini_client import make_client

log = logging.getLogger(__name__)

_BUSY = (PipelineStatus.GENERATING_PROMPTS, PipelineStatus.GENERATING_IMAGES)


class Pipeline:
    """Plan generation followed by a serial render pass, with cancellation support.

    Only one operation runs at a time: a plan request while prompts or
    images are being generated raises PipelineBusy. Observers registered
    with :meth:`subscribe` receive a fresh :class:`PipelineState` after
    every change.
    """

    def __init__(
        self,
        config: Config,
        client: Any = None,
        progress_cb: Callable[[str], None] | None = None,
        use_placeholders: bool = False,
        usage: DailyUsageCounter | None = None,
    ):
        self.config = config
        self.progress_cb = progress_cb or (lambda msg: None)
        self.use_placeholders = use_placeholders
        self.usage = usage or DailyUsageCounter()
        self._client = client
        self._lock = threading.RLock()
        self._observers: list[Callable[[PipelineState], None]] = []

        self._status = PipelineStatus.IDLE
        self._error: str | None = None
        self._plan: ScriptPlan | None = None
        self._request: PlanRequest | None = None
        self._jobs: list[ImageGenerationJob] = []
        self._cursor = 0
        self._scheduler: RenderScheduler | None = None
        # last scheduler started; survives reset until its loop returns
        self._worker: RenderScheduler | None = None
        self._plan_epoch = 0

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def plan(self) -> ScriptPlan | None:
        return self._plan

    @property
    def jobs(self) -> list[ImageGenerationJob]:
        with self._lock:
            return [j.model_copy(deep=True) for j in self._jobs]

    def subscribe(self, callback: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Register an observer. Returns a function that unregisters it."""
        with self._lock:
            self._observers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return _unsubscribe

    def state(self) -> PipelineState:
        with self._lock:
            return PipelineState(
                status=self._status,
                error=self._error,
                plan=self._plan,
                jobs=[j.model_copy(deep=True) for j in self._jobs],
                cursor=self._cursor,
                images_today=self.usage.count(),
            )

    def _notify(self) -> None:
        state = self.state()
        with self._lock:
            observers = list(self._observers)
        for cb in observers:
            try:
                cb(state)
            except Exception:
                log.exception("Pipeline observer raised")

    def connect(self) -> Any:
        """Return the Gemini client, creating it on first use. Fails without an API key."""
        if self._client is None:
            self._client = make_client(self.config)
        return self._client

    def update_config(self, config: Config) -> None:
        """Apply new settings; a changed API key drops the cached client."""
        with self._lock:
            if config.gemini_api_key != self.config.gemini_api_key:
                self._client = None
            self.config = config

    # ------------------------------------------------------------------
    # Stage 1: plan
    # ------------------------------------------------------------------

    def generate_plan(
        self,
        request: PlanRequest,
        settings: GenerationSettings | None = None,
    ) -> ScriptPlan:
        """Generate the scene plan and prepare (but don't start) its image jobs."""
        settings = settings or GenerationSettings()
        if not request.script.strip():
            raise ScriptValidationError("Content cannot be empty.")
        client = self.connect()

        with self._lock:
            if self._status in _BUSY:
                raise PipelineBusy(f"Pipeline is busy ({self._status.value}).")
            self._plan_epoch += 1
            epoch = self._plan_epoch
            self._status = PipelineStatus.GENERATING_PROMPTS
            self._error = None
            self._plan = None
            self._request = None
            self._jobs = []
            self._cursor = 0
            self._scheduler = None
        self.progress_cb("📝 Stage 1/2: Generating scene plan...")
        self._notify()

        try:
            plan = generate_plan(
                request, client=client, config=self.config, progress_cb=self.progress_cb,
            )
        except Exception as e:
            with self._lock:
                if epoch != self._plan_epoch:
                    raise
                self._status = PipelineStatus.ERROR
                self._error = str(e) or type(e).__name__
            self.progress_cb(f"  ✗ {e}")
            self._notify()
            raise

        with self._lock:
            if epoch != self._plan_epoch:
                log.info("Discarding plan that finished after a reset")
                raise PipelineCancelled("Plan generation was cancelled by a reset.")
            self._plan = plan
            self._request = request
            self._jobs = build_jobs(plan, settings)
            self._status = PipelineStatus.IDLE
        self.progress_cb(
            f"  ✓ {len(plan.scenes)} scenes, {len(self._jobs)} image jobs ready"
        )
        self._notify()
        return plan

    def rebuild_jobs(self, settings: GenerationSettings) -> list[ImageGenerationJob]:
        """Re-expand the current plan with new run settings (only while idle)."""
        with self._lock:
            if self._status in _BUSY:
                raise PipelineBusy(f"Pipeline is busy ({self._status.value}).")
            if self._plan is None:
                raise NothingToRender("Generate a scene plan first.")
            self._jobs = build_jobs(self._plan, settings)
            self._cursor = 0
            self._scheduler = None
            jobs = self.jobs
        self._notify()
        return jobs

    # ------------------------------------------------------------------
    # Stage 2: render
    # ------------------------------------------------------------------

    def start_rendering(
        self,
        settings: GenerationSettings | None = None,
        background: bool = True,
    ) -> RenderScheduler:
        """Start a render pass over the prepared jobs.

        Raises NothingToRender when there is no plan or no job, without
        leaving ``idle``. With ``background=False`` this blocks until the
        pass ends.
        """
        settings = settings or GenerationSettings()
        with self._lock:
            if self._status in _BUSY:
                raise PipelineBusy(f"Pipeline is busy ({self._status.value}).")
            if self._worker is not None and self._worker.running:
                raise PipelineBusy("The cancelled render pass is still finishing its last image.")
            if self._plan is None:
                raise NothingToRender("Generate a scene plan first.")
            if not self._jobs:
                raise NothingToRender(
                    "No scenes were identified for image generation. "
                    "Ensure image generation is enabled and generate the plan again."
                )
            render_fn = self._render_fn()
            aspect_ratio = self._request.aspect_ratio if self._request else "16:9"
            scheduler = RenderScheduler(
                self._jobs,
                settings,
                render_fn,
                aspect_ratio=aspect_ratio,
                usage=self.usage,
                downloader=lambda job: save_job_image(job, self.config.output_dir),
                progress_cb=self.progress_cb,
            )
            scheduler.on_change = partial(self._on_render_change, scheduler)
            self._scheduler = scheduler
            self._worker = scheduler
        self.progress_cb("🎨 Stage 2/2: Generating images...")

        if background:
            scheduler.start()
        else:
            scheduler.run()
        return scheduler

    def _render_fn(self):
        if self.use_placeholders:
            return render_placeholder
        return make_render_fn(self.config, self.connect())

    def _on_render_change(self, source: RenderScheduler, snap: RenderSnapshot) -> None:
        with self._lock:
            if source is not self._scheduler:
                return
            self._jobs = snap.jobs
            self._cursor = snap.cursor
            self._status = snap.status
            self._error = snap.error
        self._notify()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the last background render pass has returned."""
        scheduler = self._worker
        if scheduler is not None:
            scheduler.join(timeout)

    # ------------------------------------------------------------------
    # Cancel / reset
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop an active render pass; late results from it are discarded."""
        scheduler = self._scheduler
        if scheduler is not None and scheduler.active:
            scheduler.cancel()
            self.progress_cb("⛔ Rendering cancelled.")

    def reset(self) -> None:
        """Cancel whatever is running and forget the plan and its jobs."""
        self.cancel()
        with self._lock:
            self._plan_epoch += 1
            self._scheduler = None
            self._status = PipelineStatus.IDLE
            self._error = None
            self._plan = None
            self._request = None
            self._jobs = []
            self._cursor = 0
        self._notify()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def save_plan(self, output_dir: Path | None = None) -> Path:
        if self._plan is None:
            raise NothingToRender("No scene plan to export.")
        return save_plan(self._plan, Path(output_dir or self.config.output_dir))

    def download_images(self, output_dir: Path | None = None) -> list[Path]:
        paths = download_all(self.jobs, Path(output_dir or self.config.output_dir))
        self.progress_cb(f"  ✓ Saved {len(paths)} images")
        return paths
