"""Config read/write routes."""
from __future__ import annotations

from pathlib import Path

from litestar import get, post

from ...config import Config
from ..models import ConfigPayload
from ..session import session


@get("/api/config")
async def get_config() -> ConfigPayload:
    cfg = Config.load()
    return ConfigPayload(
        # Only the ends of the key ever leave the server
        gemini_api_key=_mask(cfg.gemini_api_key),
        output_dir=str(cfg.output_dir),
        text_model=cfg.text_model,
        image_model=cfg.image_model,
        max_words_per_chunk=cfg.max_words_per_chunk,
    )


@post("/api/config")
async def save_config(data: ConfigPayload) -> dict:
    cfg = Config.load()
    # A masked value means "unchanged"
    if data.gemini_api_key and "…" not in data.gemini_api_key:
        cfg.gemini_api_key = data.gemini_api_key
    cfg.output_dir = Path(data.output_dir)
    cfg.text_model = data.text_model
    cfg.image_model = data.image_model
    cfg.max_words_per_chunk = data.max_words_per_chunk
    cfg.save()
    session.pipeline.update_config(cfg)
    return {"ok": True}


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "…" + value[-4:] if len(value) > 8 else "…"
