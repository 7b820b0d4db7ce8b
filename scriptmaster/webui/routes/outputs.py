"""Generated image access and bulk export routes."""
from __future__ import annotations

from litestar import get, post
from litestar.exceptions import NotFoundException
from litestar.response import Response

from ...export import decode_data_uri, image_filename
from ...schemas import JobStatus
from ..models import ExportResult
from ..session import session


@get("/api/images/{job_id:str}")
async def get_image(job_id: str) -> Response:
    job = next((j for j in session.pipeline.jobs if j.id == job_id), None)
    if job is None or job.status is not JobStatus.COMPLETED or not job.image_url:
        raise NotFoundException(f"No image for job {job_id!r}")
    return Response(
        content=decode_data_uri(job.image_url),
        media_type="image/jpeg",
        headers={"Content-Disposition": f'inline; filename="{image_filename(job)}"'},
    )


@post("/api/images/export", sync_to_thread=True)
def export_images() -> ExportResult:
    paths = session.pipeline.download_images()
    return ExportResult(paths=[str(p) for p in paths])
