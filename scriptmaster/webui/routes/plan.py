"""Scene plan routes: generate, suggest a scene count, script stats, download."""
from __future__ import annotations

from litestar import get, post
from litestar.response import Response

from ...chunker import script_stats
from ...errors import NothingToRender
from ...export import plan_to_json
from ...schemas import ScriptStats
from ...config import PLAN_FILENAME
from ...scriptgen import suggest_scene_count
from ..models import PlanSubmit, SceneSuggestion, ScriptPayload
from ..session import session


@post("/api/plan")
async def create_plan(data: PlanSubmit) -> dict:
    session.submit_plan(data.request, data.settings)
    return {"ok": True, "status": session.pipeline.status.value}


@post("/api/scenes/suggest", sync_to_thread=True)
def suggest_scenes(data: ScriptPayload) -> SceneSuggestion:
    pipeline = session.pipeline
    n = suggest_scene_count(data.script, client=pipeline.connect(), config=pipeline.config)
    return SceneSuggestion(num_scenes=n)


@post("/api/stats")
async def stats(data: ScriptPayload) -> ScriptStats:
    return script_stats(data.script)


@get("/api/plan/download")
async def download_plan() -> Response:
    plan = session.pipeline.plan
    if plan is None:
        raise NothingToRender("No scene plan to export.")
    return Response(
        content=plan_to_json(plan),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{PLAN_FILENAME}"'},
    )
