"""Sequential image render scheduler.

Drives the job queue one job at a time: mark the job ``generating``, make
one remote render call, record the outcome, wait the configured delay,
move on. A quota failure stops the whole pass; any other failure is
recorded on its job and the pass continues. Nothing is retried.

The scheduler owns the job list and the render status while a pass is
active. Observers get deep-copied snapshots through ``on_change``.
"""
from __future__ import annotations

import logging
import random
import threading
from typing import Callable

from .errors import NothingToRender, PipelineBusy, is_quota_exhausted
from .schemas import (
    GenerationSettings,
    ImageGenerationJob,
    JobStatus,
    PipelineStatus,
    RenderSnapshot,
)

log = logging.getLogger(__name__)

QUOTA_STOP_MESSAGE = "Image generation stopped: Your daily free quota has been exceeded."

RenderFn = Callable[[str, str], str]
"""``(prompt, aspect_ratio) -> image data URI``; raises on failure."""


def compute_delay(settings: GenerationSettings, rng: random.Random | None = None) -> float:
    """Seconds to pause after a job resolves, never negative."""
    if settings.wait_time_mode == "fixed":
        delay = settings.fixed_wait_time
    else:
        lo, hi = settings.random_wait_time_min, settings.random_wait_time_max
        delay = lo + (rng or random).random() * (hi - lo)
    return max(0.0, delay)


class RenderScheduler:
    """Renders a job queue serially with pacing and cooperative cancellation."""

    def __init__(
        self,
        jobs: list[ImageGenerationJob],
        settings: GenerationSettings,
        render_fn: RenderFn,
        *,
        aspect_ratio: str = "16:9",
        usage=None,
        downloader: Callable[[ImageGenerationJob], object] | None = None,
        on_change: Callable[[RenderSnapshot], None] | None = None,
        progress_cb: Callable[[str], None] | None = None,
        wait_fn: Callable[[float], bool] | None = None,
        rng: random.Random | None = None,
    ):
        self._jobs = [j.model_copy(deep=True) for j in jobs]
        self.settings = settings
        self.render_fn = render_fn
        self.aspect_ratio = aspect_ratio
        self.usage = usage
        self.downloader = downloader
        self.on_change = on_change or (lambda snap: None)
        self.progress_cb = progress_cb or (lambda msg: None)
        self._wait_fn = wait_fn
        self._rng = rng

        self._status = PipelineStatus.IDLE
        self._error: str | None = None
        self._cursor = 0
        self._epoch = 0
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def status(self) -> PipelineStatus:
        return self._status

    @property
    def active(self) -> bool:
        return self._status == PipelineStatus.GENERATING_IMAGES

    @property
    def running(self) -> bool:
        """True until the loop has returned, even after a cancel.

        A cancelled pass may still be waiting on its last render call.
        """
        return self._running

    def snapshot(self) -> RenderSnapshot:
        with self._lock:
            return RenderSnapshot(
                status=self._status,
                error=self._error,
                cursor=self._cursor,
                jobs=[j.model_copy(deep=True) for j in self._jobs],
            )

    def _notify(self) -> None:
        snap = self.snapshot()
        try:
            self.on_change(snap)
        except Exception:
            log.exception("Render observer raised")

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the pass on a daemon thread. Returns the thread."""
        epoch = self._begin()
        thread = threading.Thread(
            target=self._run_guarded, args=(epoch,), daemon=True, name="render-scheduler"
        )
        self._thread = thread
        thread.start()
        return thread

    def run(self) -> RenderSnapshot:
        """Run the pass on the calling thread until it completes, halts or is cancelled."""
        epoch = self._begin()
        try:
            self._loop(epoch)
        finally:
            self._running = False
        return self.snapshot()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        """Stop the pass. A render call still in flight has its result discarded.

        The interrupted job goes back to ``pending`` so a later pass renders it.
        """
        with self._lock:
            self._epoch += 1
            for job in self._jobs:
                if job.status == JobStatus.GENERATING:
                    job.status = JobStatus.PENDING
            if self._status == PipelineStatus.GENERATING_IMAGES:
                self._status = PipelineStatus.IDLE
            self._cancelled.set()
        log.info("Render pass cancelled")
        self._notify()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _begin(self) -> int:
        with self._lock:
            if not self._jobs:
                raise NothingToRender("No scenes were identified for image generation.")
            if self._running:
                raise PipelineBusy("A render pass is already running.")
            self._running = True
            self._status = PipelineStatus.GENERATING_IMAGES
            self._error = None
            self._cursor = 0
            self._cancelled.clear()
            epoch = self._epoch
        self.progress_cb(f"🎨 Rendering {len(self._jobs)} images, one at a time...")
        self._notify()
        return epoch

    def _run_guarded(self, epoch: int) -> None:
        try:
            self._loop(epoch)
        except Exception as e:
            log.exception("Render pass crashed")
            with self._lock:
                if epoch == self._epoch:
                    self._status = PipelineStatus.ERROR
                    self._error = str(e)
            self._notify()
        finally:
            self._running = False

    def _wait(self, delay: float) -> bool:
        """Pause between jobs. True means the pass was cancelled meanwhile."""
        if self._wait_fn is not None:
            return bool(self._wait_fn(delay))
        return self._cancelled.wait(delay)

    def _loop(self, epoch: int) -> None:
        total = len(self._jobs)
        while True:
            with self._lock:
                if epoch != self._epoch:
                    return
                if self._cursor >= total:
                    self._status = PipelineStatus.COMPLETED
                    break
                index = self._cursor
                job = self._jobs[index]
                if job.status != JobStatus.PENDING:
                    # already resolved elsewhere; never render a job twice
                    self._cursor += 1
                    continue
                job.status = JobStatus.GENERATING
                prompt = job.prompt
                job_ref = job.id
            self._notify()
            self.progress_cb(f"  Generating image {index + 1}/{total} (job {job_ref})...")

            image_url = None
            error_msg = None
            fatal = False
            try:
                image_url = self.render_fn(prompt, self.aspect_ratio)
            except Exception as e:
                error_msg = str(e) or "An unknown error occurred."

            with self._lock:
                if epoch != self._epoch:
                    log.info("Discarding late result for job %s after cancellation", job_ref)
                    return
                if error_msg is None:
                    job.status = JobStatus.COMPLETED
                    job.image_url = image_url
                    finished = job.model_copy()
                else:
                    job.status = JobStatus.ERROR
                    job.error = error_msg
                    fatal = is_quota_exhausted(error_msg)
                    if fatal:
                        self._status = PipelineStatus.ERROR
                        self._error = QUOTA_STOP_MESSAGE

            if error_msg is None:
                self.progress_cb(f"  ✓ Job {job_ref}")
                self._after_success(finished)
            elif fatal:
                log.error("Quota exhausted on job %s: %s", job_ref, error_msg)
                self.progress_cb(f"  ⛔ {QUOTA_STOP_MESSAGE}")
                self._notify()
                return
            else:
                log.warning("Job %s failed: %s", job_ref, error_msg)
                self.progress_cb(f"  ✗ Job {job_ref} failed: {error_msg}")
            self._notify()

            delay = compute_delay(self.settings, self._rng)
            if delay:
                log.debug("Waiting %.2fs before next job", delay)
            if self._wait(delay):
                return
            with self._lock:
                if epoch != self._epoch:
                    return
                self._cursor += 1

        self.progress_cb("🎉 All images processed.")
        log.info("Render pass completed")
        self._notify()

    def _after_success(self, job: ImageGenerationJob) -> None:
        if self.usage is not None:
            try:
                self.usage.increment()
            except OSError as e:
                log.warning("Could not update usage counter: %s", e)
        if self.settings.auto_download and self.downloader is not None:
            try:
                self.downloader(job)
            except (OSError, ValueError) as e:
                log.warning("Auto-download failed for job %s: %s", job.id, e)
                self.progress_cb(f"  ⚠ Auto-download failed for job {job.id}: {e}")
