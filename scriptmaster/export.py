"""Plan JSON export and image file downloads."""
from __future__ import annotations

import base64
import logging
import re
import time
from pathlib import Path
from typing import Callable, Iterable

from .config import DOWNLOAD_STAGGER, PLAN_FILENAME
from .schemas import ImageGenerationJob, JobStatus, ScriptPlan

log = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def plan_to_json(plan: ScriptPlan) -> str:
    return plan.model_dump_json(indent=2)


def save_plan(plan: ScriptPlan, output_dir: Path) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / PLAN_FILENAME
    path.write_text(plan_to_json(plan), encoding="utf-8")
    log.info("Saved plan to %s", path)
    return path


def image_filename(job: ImageGenerationJob) -> str:
    return f"scene_{job.scene_id}_{job.run_index}.jpg"


def decode_data_uri(uri: str) -> bytes:
    m = _DATA_URI_RE.match(uri or "")
    if not m:
        raise ValueError("Not a base64 data: URI")
    return base64.b64decode(m.group("data"))


def save_job_image(job: ImageGenerationJob, output_dir: Path) -> Path:
    if not job.image_url:
        raise ValueError(f"Job {job.id} has no image")
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / image_filename(job)
    path.write_bytes(decode_data_uri(job.image_url))
    log.info("Saved image %s", path)
    return path


def download_all(
    jobs: Iterable[ImageGenerationJob],
    output_dir: Path,
    stagger: float = DOWNLOAD_STAGGER,
    sleep: Callable[[float], None] = time.sleep,
) -> list[Path]:
    """Save every completed image one after another, *stagger* seconds apart."""
    done = [j for j in jobs if j.status == JobStatus.COMPLETED and j.image_url]
    paths: list[Path] = []
    for i, job in enumerate(done):
        if i:
            sleep(stagger)
        paths.append(save_job_image(job, output_dir))
    return paths
