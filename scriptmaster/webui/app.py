"""Litestar ASGI application for the ScriptMaster Web API."""
from __future__ import annotations

import asyncio
import logging

from litestar import Litestar, Request, Response
from litestar.config.cors import CORSConfig
from litestar.logging import LoggingConfig

from ..errors import (
    ConfigurationError,
    NothingToRender,
    PipelineBusy,
    PlanGenerationError,
    ScriptMasterError,
    ScriptValidationError,
)
from .routes.config import get_config, save_config
from .routes.outputs import export_images, get_image
from .routes.plan import create_plan, download_plan, stats, suggest_scenes
from .routes.render import cancel_render, get_state, rebuild_jobs, reset, start_render
from .routes.stream import stream_state
from .session import session

log = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[ScriptMasterError], int]] = [
    (ScriptValidationError, 400),
    (ConfigurationError, 400),
    (PipelineBusy, 409),
    (NothingToRender, 409),
    (PlanGenerationError, 502),
]


def _on_startup() -> None:
    """Capture the running event loop for thread-safe queue operations."""
    session.set_event_loop(asyncio.get_event_loop())


def _handle_error(request: Request, exc: ScriptMasterError) -> Response:
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    if status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return Response(
        content={"error": type(exc).__name__, "detail": str(exc)},
        status_code=status,
    )


app = Litestar(
    route_handlers=[
        get_config,
        save_config,
        create_plan,
        suggest_scenes,
        stats,
        download_plan,
        start_render,
        cancel_render,
        rebuild_jobs,
        reset,
        get_state,
        stream_state,
        get_image,
        export_images,
    ],
    cors_config=CORSConfig(
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    ),
    exception_handlers={ScriptMasterError: _handle_error},
    on_startup=[_on_startup],
    logging_config=LoggingConfig(
        loggers={
            "scriptmaster": {"level": "INFO", "handlers": ["queue_listener"]},
        }
    ),
)
