import json
from types import SimpleNamespace

import pytest

from scriptmaster.config import Config
from scriptmaster.usage import DailyUsageCounter


class FakeModels:
    """Stands in for ``client.models``: replays canned replies and records calls."""

    def __init__(self, replies=(), images=()):
        self.replies = list(replies)
        self.images = list(images)
        self.calls = []
        self.image_calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply)

    def generate_images(self, **kwargs):
        self.image_calls.append(kwargs)
        reply = self.images.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def fake_client(replies=(), images=()):
    return SimpleNamespace(models=FakeModels(replies, images))


def plan_json(ids, characters=None, style="noir", summary="A story", generate=None):
    generate = generate or {}
    return json.dumps({
        "summary": summary,
        "characters": characters or [],
        "style": style,
        "scenes": [
            {
                "id": i,
                "title": f"Scene {i}",
                "description": f"Description {i}",
                "camera_angle": "wide",
                "lighting": "dusk",
                "visual_prompt": f"prompt for scene {i}",
                "generate_image": generate.get(i, True),
            }
            for i in ids
        ],
    })


@pytest.fixture
def config(tmp_path):
    return Config(gemini_api_key="test-key", output_dir=tmp_path / "out")


@pytest.fixture
def usage(tmp_path):
    return DailyUsageCounter(tmp_path / "usage.json")
