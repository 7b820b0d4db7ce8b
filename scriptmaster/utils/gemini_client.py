"""Thin wrappers around the Gemini text and Imagen image endpoints."""
from __future__ import annotations

import base64
import logging
from typing import Any

from google import genai
from google.genai import types

from ..config import Config
from ..errors import (
    RenderError,
    SafetyFilterError,
    ScriptValidationError,
    is_quota_exhausted,
    is_safety_filtered,
)

log = logging.getLogger(__name__)


def make_client(config: Config) -> genai.Client:
    """Build a client, failing fast when no API key is configured."""
    return genai.Client(api_key=config.require_api_key())


def generate_json(
    client: Any,
    model: str,
    system_instruction: str,
    user_text: str,
    response_schema: Any,
    image: tuple[bytes, str] | None = None,
) -> str:
    """Ask the text model for a JSON document matching *response_schema*.

    *image* is an optional ``(bytes, mime_type)`` pair sent ahead of the text.
    Returns the raw response text; parsing is left to the caller.
    """
    contents: list[Any] = []
    if image is not None:
        data, mime_type = image
        contents.append(types.Part.from_bytes(data=data, mime_type=mime_type))
    contents.append(user_text)

    resp = client.models.generate_content(
        model=model,
        contents=contents,
        config=types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            response_schema=response_schema,
        ),
    )
    text = getattr(resp, "text", None)
    if not text:
        raise ValueError("No response text generated.")
    return text


def generate_text(client: Any, model: str, prompt: str) -> str:
    resp = client.models.generate_content(model=model, contents=prompt)
    return (getattr(resp, "text", None) or "").strip()


def generate_image(client: Any, model: str, prompt: str, aspect_ratio: str) -> str:
    """Render one JPEG for *prompt* and return it as a ``data:`` URI.

    Raises SafetyFilterError when the prompt was blocked and RenderError for
    anything else. The upstream message is kept in the error text so callers
    can still recognise quota failures.
    """
    if not prompt.strip():
        raise ScriptValidationError("Prompt cannot be empty for image generation.")

    # The ratio is also spelled out in the prompt; the config sets the real size
    full_prompt = f"{prompt} --ar {aspect_ratio}"

    try:
        resp = client.models.generate_images(
            model=model,
            prompt=full_prompt,
            config=types.GenerateImagesConfig(
                number_of_images=1,
                output_mime_type="image/jpeg",
                aspect_ratio=aspect_ratio,
            ),
        )
    except Exception as e:
        msg = str(e) or "An unknown error occurred."
        log.warning("Imagen call failed: %s", msg)
        if is_quota_exhausted(msg):
            raise RenderError(f"Failed to generate image. Details: {msg}") from e
        if is_safety_filtered(msg):
            raise SafetyFilterError(
                "Image generation failed due to safety filters. Please modify your prompt. "
                f"Details: {msg}"
            ) from e
        raise RenderError(f"Failed to generate image. Details: {msg}") from e

    generated = getattr(resp, "generated_images", None) or []
    first = generated[0] if generated else None
    image = getattr(first, "image", None)
    image_bytes = getattr(image, "image_bytes", None)
    if not image_bytes:
        reason = getattr(first, "rai_filtered_reason", None)
        if reason:
            raise SafetyFilterError(
                f"Image generation failed due to safety filters ({reason}). Please modify your prompt."
            )
        raise RenderError("Image generation failed: No image data received from API.")

    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"
