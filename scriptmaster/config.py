"""Settings and API key management."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

log = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".scriptmaster"
CONFIG_FILE = CONFIG_DIR / "config.json"
USAGE_FILE = CONFIG_DIR / "usage.json"

# Models
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"

# Scene pacing: one scene per SECONDS_PER_SCENE of narration read at WORDS_PER_MINUTE
WORDS_PER_MINUTE = 150
SECONDS_PER_SCENE = 10

# Words per text-generation call; longer scripts are chunked
MAX_WORDS_PER_CHUNK = 1500

# Scene-count suggestion only reads the head of the script
SUGGEST_SCENES_MAX_CHARS = 2000

# Pause between files in a batch download
DOWNLOAD_STAGGER = 0.3  # seconds

PLAN_FILENAME = "veo_script_master_plan.json"


@dataclass
class Config:
    gemini_api_key: str = ""
    output_dir: Path = field(default_factory=lambda: Path("output"))
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    max_words_per_chunk: int = MAX_WORDS_PER_CHUNK

    @classmethod
    def load(cls) -> "Config":
        """Load config from env vars then config file."""
        cfg = cls()

        # Env var takes priority
        api_key = os.environ.get("GEMINI_API_KEY", "") or os.environ.get("API_KEY", "")

        if CONFIG_FILE.exists():
            try:
                data = json.loads(CONFIG_FILE.read_text(encoding="utf-8-sig"))
                if not api_key:
                    api_key = data.get("gemini_api_key", "")
                if out := data.get("output_dir"):
                    cfg.output_dir = Path(out)
                if tm := data.get("text_model"):
                    cfg.text_model = tm
                if im := data.get("image_model"):
                    cfg.image_model = im
                if data.get("max_words_per_chunk") is not None:
                    n = int(data["max_words_per_chunk"])
                    if n < 1:
                        raise ValueError(f"max_words_per_chunk must be >= 1, got {n}")
                    cfg.max_words_per_chunk = n
            except (json.JSONDecodeError, OSError, ValueError) as e:
                log.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, e)

        cfg.gemini_api_key = api_key
        return cfg

    def save(self) -> None:
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        data = {
            "gemini_api_key": self.gemini_api_key,
            "output_dir": str(self.output_dir),
            "text_model": self.text_model,
            "image_model": self.image_model,
            "max_words_per_chunk": self.max_words_per_chunk,
        }
        CONFIG_FILE.write_text(json.dumps(data, indent=2))

    def require_api_key(self) -> str:
        """Return the Gemini key or fail before any network call is attempted."""
        if not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Export it or add it to ~/.scriptmaster/config.json"
            )
        return self.gemini_api_key
