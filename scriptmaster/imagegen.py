"""Image render adapters for the scheduler: Imagen, or Pillow placeholders."""
from __future__ import annotations

import base64
import io
import logging
from typing import Any

from PIL import Image, ImageDraw, ImageFont

from .config import Config
from .scheduler import RenderFn
from .utils.gemini_client import generate_image, make_client

log = logging.getLogger(__name__)

# Placeholder canvas sizes per aspect ratio
PLACEHOLDER_SIZES: dict[str, tuple[int, int]] = {
    "16:9": (1024, 576),
    "9:16": (576, 1024),
    "4:3": (1024, 768),
    "3:4": (768, 1024),
    "1:1": (1024, 1024),
}


def make_render_fn(config: Config, client: Any = None) -> RenderFn:
    """Bind the Imagen call to a client so the scheduler only passes prompt + ratio."""
    if client is None:
        client = make_client(config)

    def render(prompt: str, aspect_ratio: str) -> str:
        log.info("Rendering with %s (%s): %s", config.image_model, aspect_ratio, prompt[:80])
        return generate_image(client, config.image_model, prompt, aspect_ratio)

    return render


def render_placeholder(prompt: str, aspect_ratio: str = "16:9") -> str:
    """Draw the prompt onto a plain card and return it as a JPEG data URI (no API needed)."""
    width, height = PLACEHOLDER_SIZES.get(aspect_ratio, PLACEHOLDER_SIZES["16:9"])
    img = Image.new("RGB", (width, height), color=(30, 30, 50))
    draw = ImageDraw.Draw(img)

    try:
        font = ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", 24)
    except OSError:
        font = ImageFont.load_default()

    # Simple word wrap
    lines: list[str] = []
    current = ""
    for w in prompt.split():
        test = f"{current} {w}".strip()
        bbox = draw.textbbox((0, 0), test, font=font)
        if bbox[2] > width - 80 and current:
            lines.append(current)
            current = w
        else:
            current = test
    if current:
        lines.append(current)

    y = max(20, height // 2 - len(lines) * 17)
    for line in lines:
        bbox = draw.textbbox((0, 0), line, font=font)
        x = (width - bbox[2]) // 2
        draw.text((x + 2, y + 2), line, fill=(0, 0, 0), font=font)
        draw.text((x, y), line, fill=(200, 200, 255), font=font)
        y += 34

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=85)
    return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
