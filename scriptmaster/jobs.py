"""Expand a finalized ScriptPlan into the ordered image job queue."""
from __future__ import annotations

import logging

from .schemas import GenerationSettings, ImageGenerationJob, ScriptPlan

log = logging.getLogger(__name__)


def job_id(scene_id: int, run_index: int) -> str:
    return f"{scene_id}-{run_index}"


def build_jobs(plan: ScriptPlan, settings: GenerationSettings) -> list[ImageGenerationJob]:
    """Build one pending job per (image scene, run), in ascending scene id order.

    ``start_from_prompt`` is a 1-based position in the list of scenes that
    want an image; earlier ones get no jobs. An empty list means there is
    nothing to render; callers must not start the scheduler on it.
    """
    if not settings.generate_images:
        return []

    scenes = sorted(plan.image_scenes, key=lambda s: s.id)
    scenes = scenes[settings.start_from_prompt - 1:]

    jobs = [
        ImageGenerationJob(
            id=job_id(scene.id, run),
            scene_id=scene.id,
            run_index=run,
            prompt=scene.visual_prompt,
        )
        for scene in scenes
        for run in range(settings.runs_per_prompt)
    ]
    log.info("Built %d image jobs from %d scenes", len(jobs), len(scenes))
    return jobs
