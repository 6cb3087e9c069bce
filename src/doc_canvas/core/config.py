"""application settings.

stored as json in the app directory. keys use the camelCase names the
desktop app wrote, so existing config files keep working.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

APP_DIR_ENV = "DOC_CANVAS_HOME"
CONFIG_FILE = "config.json"
DEFAULT_SUMMARY_MAX_CHARS = 100
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates documentation in Markdown format. "
    "Be concise and professional."
)


class _Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LLMConfig(_Settings):
    model: str = "opus"
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="systemPrompt")


class GenerationConfig(_Settings):
    summary_max_chars: int = Field(default=DEFAULT_SUMMARY_MAX_CHARS, alias="summaryMaxChars")

    @property
    def effective_summary_max_chars(self) -> int:
        """non-positive values fall back to the default."""
        if self.summary_max_chars <= 0:
            return DEFAULT_SUMMARY_MAX_CHARS
        return self.summary_max_chars


class ImageGenConfig(_Settings):
    provider: str = "openrouter"
    base_url: str = Field(default="https://openrouter.ai/api/v1", alias="baseURL")
    model: str = "sourceful/riverflow-v2-standard-preview"
    api_key: str = Field(default="", alias="apiKey")
    download_path: str = Field(default="Image/", alias="downloadPath")
    timeout: float = 180.0


class AppConfig(_Settings):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    image_gen: ImageGenConfig = Field(default_factory=ImageGenConfig, alias="imageGen")

    def image_root(self, app_dir: Optional[Path] = None) -> Path:
        """absolute image directory; relative paths hang off the app dir."""
        path = Path(self.image_gen.download_path).expanduser()
        if path.is_absolute():
            return path
        return (app_dir or get_app_dir()) / path


def get_app_dir() -> Path:
    """the application directory (config, canvases, images)."""
    override = os.environ.get(APP_DIR_ENV)
    app_dir = Path(override).expanduser() if override else Path.home() / ".doc-canvas"
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def get_config_path() -> Path:
    return get_app_dir() / CONFIG_FILE


def load_config(path: Optional[Path] = None) -> AppConfig:
    """load settings, writing defaults on first run.

    a broken config file is logged and replaced by defaults in memory.
    """
    path = path or get_config_path()
    if not path.exists():
        config = AppConfig()
        try:
            save_config(config, path)
        except OSError as e:
            logging.warning(f"failed to save default config: {e}")
        return config
    try:
        with open(path, encoding="utf-8") as f:
            return AppConfig.model_validate(json.load(f))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logging.warning(f"failed to load config from {path}: {e}")
        return AppConfig()


def save_config(config: AppConfig, path: Optional[Path] = None) -> Path:
    """persist settings (including api keys) to the local config file."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(config.model_dump_json(by_alias=True, indent=2))
    return path
