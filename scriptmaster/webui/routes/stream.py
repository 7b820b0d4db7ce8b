"""SSE state/log streaming route."""
from __future__ import annotations

import json

from litestar import get
from litestar.response import ServerSentEvent, ServerSentEventMessage

from ..session import session


@get("/api/stream", media_type="text/event-stream")
async def stream_state() -> ServerSentEvent:
    async def _generate():
        async for msg in session.stream():
            yield ServerSentEventMessage(data=json.dumps(msg), event=msg["type"])

    return ServerSentEvent(_generate())
