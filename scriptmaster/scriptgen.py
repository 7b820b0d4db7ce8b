"""Scene plan generator: script (or script chunks) → ScriptPlan via Gemini.

Long scripts are split by :mod:`scriptmaster.chunker` and sent one chunk at
a time. Every chunk after the first is told the style and characters the
earlier chunks settled on, and the fragments are merged into one plan
whose scene ids run 1..N.
"""
from __future__ import annotations

import base64
import json
import logging
import math
import re
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from .chunker import count_words, split_script
from .config import SECONDS_PER_SCENE, SUGGEST_SCENES_MAX_CHARS, WORDS_PER_MINUTE, Config
from .errors import ChunkGenerationError, ScriptValidationError
from .schemas import Character, ContinuationContext, PlanRequest, ScriptPlan
from .utils.gemini_client import generate_json, generate_text, make_client

log = logging.getLogger(__name__)

SUMMARY_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------------
# Scene-count policy
# ---------------------------------------------------------------------------

def estimate_scene_count(word_count: int) -> int:
    """One scene per ten seconds of narration read at 150 words per minute."""
    duration = (word_count / WORDS_PER_MINUTE) * 60
    return max(1, math.ceil(duration / SECONDS_PER_SCENE))


def distribute_scene_count(total: int, chunk_word_counts: list[int]) -> list[int]:
    """Split an explicit scene count across chunks in proportion to their length.

    Every chunk gets at least one scene; rounding drift is settled on the
    largest chunks first so the targets add up to ``max(total, len(chunks))``.
    """
    n = len(chunk_word_counts)
    if n == 0:
        return []
    if n == 1:
        return [max(1, total)]

    all_words = sum(chunk_word_counts) or n
    targets = [max(1, round(total * wc / all_words)) for wc in chunk_word_counts]
    goal = max(total, n)
    by_size = sorted(range(n), key=lambda i: chunk_word_counts[i], reverse=True)
    i = 0
    while sum(targets) != goal:
        idx = by_size[i % n]
        if sum(targets) < goal:
            targets[idx] += 1
        elif targets[idx] > 1:
            targets[idx] -= 1
        i += 1
    return targets


# ---------------------------------------------------------------------------
# Response schema sent to Gemini (no defaults: the API rejects them)
# ---------------------------------------------------------------------------

class _CharacterResponse(BaseModel):
    name: str
    description: str


class _SceneResponse(BaseModel):
    id: int
    title: str
    description: str
    camera_angle: str
    lighting: str
    visual_prompt: str
    generate_image: bool


class _PlanResponse(BaseModel):
    summary: str
    characters: list[_CharacterResponse]
    style: str
    scenes: list[_SceneResponse]


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------

_SYSTEM_TEMPLATE = """
You are VEO ScriptMaster, an AI expert in creating long-form visual scripts and cinematic image prompts.

**CORE RESPONSIBILITIES:**
1. **Script Analysis**: Analyze the input text. If it's a topic, write a script. If it's a script, analyze and structure it.
2. **Scene Breakdown**: Break the content into distinct scenes. Target approximately {scene_count} scenes.
3. **Visual Prompts**: Create detailed, VEO-ready image prompts for each scene.
4. **Consistency**: Maintain strict character and style consistency across all prompts.

**STYLE CONFIGURATION:**
- Global Style: {visual_style}
- Additional Keywords: {keywords}
- Aspect Ratio: {aspect_ratio}
{continuation}
**RULES:**
- Prompts must be long, detailed, and cinematic. Include camera angles and lighting.
- Do not invent historical facts if the topic is historical.
- Set "generate_image" to true for key visual scenes.
- Number scenes starting at {start_id}.
- Return output strictly in the specified JSON format.
"""

_CONTINUATION_TEMPLATE = """
**CONTINUATION (part {part} of {total}):**
Earlier parts of this script have already been broken into scenes.
- Keep the established style exactly, do not re-derive it: {style}
- Reuse these known characters by name with their existing descriptions: {characters}
- Only add a character if it is genuinely new in this part.
"""

_USER_TEMPLATE = """
INPUT CONTENT:
---
{script}
---
CONTEXT:
- Niche: {niche}
- Reference Image Provided: {reference}

Generate the JSON plan.
"""


def build_system_instruction(
    request: PlanRequest,
    *,
    scene_count: int,
    start_id: int = 1,
    context: ContinuationContext | None = None,
    part: int = 1,
    total_parts: int = 1,
) -> str:
    continuation = ""
    if context is not None:
        names = ", ".join(c.name for c in context.characters) or "None yet"
        continuation = _CONTINUATION_TEMPLATE.format(
            part=part, total=total_parts, style=context.style, characters=names,
        )
    return _SYSTEM_TEMPLATE.format(
        scene_count=scene_count,
        visual_style=request.visual_style,
        keywords=request.style_keywords or "None",
        aspect_ratio=request.aspect_ratio,
        continuation=continuation,
        start_id=start_id,
    )


def build_user_prompt(chunk: str, request: PlanRequest, attach_reference: bool) -> str:
    if attach_reference:
        reference = "YES (See attached)"
    elif request.reference_image is not None:
        reference = "NO (style already established from the reference in an earlier part)"
    else:
        reference = "NO"
    return _USER_TEMPLATE.format(script=chunk, niche=request.niche or "General", reference=reference)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _extract_json(text: str) -> dict:
    """Extract the first JSON object from a text response."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    fence = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if fence:
        try:
            return json.loads(fence.group(1))
        except json.JSONDecodeError:
            pass
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    raise ValueError(f"No valid JSON found in response:\n{text[:500]}")


def renumber_scenes(plan: ScriptPlan, start_id: int) -> ScriptPlan:
    """Rewrite scene ids to start_id, start_id+1, … keeping the returned order."""
    scenes = [s.model_copy(update={"id": start_id + i}) for i, s in enumerate(plan.scenes)]
    return plan.model_copy(update={"scenes": scenes})


def parse_fragment(text: str, start_id: int = 1) -> ScriptPlan:
    data = _extract_json(text)
    try:
        plan = ScriptPlan.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Response does not match the plan schema: {e}") from e
    return renumber_scenes(plan, start_id)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_plan_fragment(
    chunk: str,
    request: PlanRequest,
    *,
    start_id: int = 1,
    scene_count: int | None = None,
    context: ContinuationContext | None = None,
    attach_reference: bool = True,
    part: int = 1,
    total_parts: int = 1,
    client: Any = None,
    config: Config | None = None,
) -> ScriptPlan:
    """Generate the plan for one chunk, with scene ids starting at *start_id*."""
    config = config or Config.load()
    if client is None:
        client = make_client(config)
    if scene_count is None:
        scene_count = request.num_scenes or estimate_scene_count(count_words(chunk))

    image = None
    send_reference = attach_reference and request.reference_image is not None
    if send_reference:
        ref = request.reference_image
        image = (base64.b64decode(ref.data), ref.mime_type)

    system = build_system_instruction(
        request,
        scene_count=scene_count,
        start_id=start_id,
        context=context,
        part=part,
        total_parts=total_parts,
    )
    user = build_user_prompt(chunk, request, send_reference)

    raw = generate_json(client, config.text_model, system, user, _PlanResponse, image=image)
    log.debug("Plan fragment raw response (part %d/%d):\n%s", part, total_parts, raw)
    return parse_fragment(raw, start_id)


def merge_fragments(fragments: list[ScriptPlan]) -> ScriptPlan:
    """Merge per-chunk plans into one.

    Scenes keep chunk order and are renumbered 1..N, summaries are joined,
    the first chunk's style wins, and characters are unioned by name with
    the first description seen kept.
    """
    if not fragments:
        return ScriptPlan()

    characters: list[Character] = []
    seen: set[str] = set()
    scenes = []
    for frag in fragments:
        for c in frag.characters:
            if c.name not in seen:
                seen.add(c.name)
                characters.append(c)
        scenes.extend(frag.scenes)

    merged = ScriptPlan(
        summary=SUMMARY_SEPARATOR.join(f.summary for f in fragments if f.summary),
        characters=characters,
        style=fragments[0].style,
        scenes=scenes,
    )
    return renumber_scenes(merged, 1)


def generate_plan(
    request: PlanRequest,
    *,
    client: Any = None,
    config: Config | None = None,
    max_words: int | None = None,
    progress_cb: Callable[[str], None] | None = None,
) -> ScriptPlan:
    """Turn a full script into a merged ScriptPlan.

    Chunks are generated serially. If any chunk fails the whole call fails
    with ChunkGenerationError and nothing from the earlier chunks is kept.
    """
    cb = progress_cb or (lambda msg: None)
    if not request.script.strip():
        raise ScriptValidationError("Content cannot be empty.")

    config = config or Config.load()
    if client is None:
        client = make_client(config)

    chunks = split_script(request.script, max_words or config.max_words_per_chunk)
    total = len(chunks)
    word_counts = [count_words(c) for c in chunks]
    if request.num_scenes:
        targets = distribute_scene_count(request.num_scenes, word_counts)
    else:
        targets = [estimate_scene_count(wc) for wc in word_counts]

    if total > 1:
        cb(f"📚 Long script ({sum(word_counts)} words): processing in {total} parts")

    fragments: list[ScriptPlan] = []
    context: ContinuationContext | None = None
    next_id = 1
    for idx, (chunk, target) in enumerate(zip(chunks, targets), 1):
        cb(f"  Part {idx}/{total}: {word_counts[idx - 1]} words, ~{target} scenes")
        try:
            frag = generate_plan_fragment(
                chunk,
                request,
                start_id=next_id,
                scene_count=target,
                context=context,
                attach_reference=idx == 1,
                part=idx,
                total_parts=total,
                client=client,
                config=config,
            )
        except Exception as e:
            log.error("Plan generation failed on chunk %d/%d: %s", idx, total, e)
            raise ChunkGenerationError(idx, total, e) from e

        if not frag.scenes:
            raise ChunkGenerationError(idx, total, "model returned no scenes")

        fragments.append(frag)
        next_id += len(frag.scenes)
        if context is None:
            context = ContinuationContext.from_plan(frag)
        else:
            known = {c.name for c in context.characters}
            context = ContinuationContext(
                style=context.style,
                characters=context.characters + [c for c in frag.characters if c.name not in known],
            )
        cb(f"  ✓ Part {idx}/{total}: {len(frag.scenes)} scenes")

    plan = merge_fragments(fragments)
    log.info("Generated plan: %d scenes, %d characters", len(plan.scenes), len(plan.characters))
    return plan


def suggest_scene_count(
    script: str,
    *,
    client: Any = None,
    config: Config | None = None,
) -> int:
    """Ask the model how many scenes the script needs.

    Falls back to :func:`estimate_scene_count` when the reply isn't an
    integer or the call fails, so both paths agree on the default.
    """
    if not script.strip():
        raise ScriptValidationError("Please provide content first.")

    fallback = estimate_scene_count(count_words(script))
    config = config or Config.load()
    if client is None:
        client = make_client(config)

    prompt = (
        "Read the following script/content and determine an optimal number of distinct "
        "visual scenes for a video/slideshow. Respond with ONLY the integer number. "
        f"Content: {script[:SUGGEST_SCENES_MAX_CHARS]}..."
    )
    try:
        reply = generate_text(client, config.text_model, prompt)
    except Exception as e:
        log.warning("Scene suggestion failed, using estimate %d: %s", fallback, e)
        return fallback

    match = re.match(r"\s*(\d+)", reply)
    if not match or int(match.group(1)) < 1:
        log.info("Unparseable scene suggestion %r, using estimate %d", reply[:40], fallback)
        return fallback
    return int(match.group(1))

