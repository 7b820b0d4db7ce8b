"""Render control routes and state snapshot."""
from __future__ import annotations

from litestar import get, post

from ...schemas import GenerationSettings, PipelineState
from ..session import session


@post("/api/render")
async def start_render(data: GenerationSettings) -> dict:
    session.start_render(data)
    return {"ok": True}


@post("/api/render/cancel")
async def cancel_render() -> dict:
    session.pipeline.cancel()
    return {"ok": True}


@post("/api/jobs/rebuild")
async def rebuild_jobs(data: GenerationSettings) -> dict:
    jobs = session.pipeline.rebuild_jobs(data)
    return {"ok": True, "jobs": len(jobs)}


@post("/api/reset")
async def reset() -> dict:
    session.pipeline.reset()
    return {"ok": True}


@get("/api/state")
async def get_state() -> PipelineState:
    return session.state()
