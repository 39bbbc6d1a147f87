"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"
ENV_PREFIX = "TSUMUGI_"


class Settings(BaseModel):
    app_name:           str = "tsumugi"
    parser_preset:      str = Field(default="commonmark", description="MarkdownIt preset name")
    blank_line_class:   str = Field(default="blank-line", pattern=r"^[A-Za-z][\w-]*$",
                                    description="CSS class marking blank-line paragraphs")
    empty_message:      str = Field(default="This document is empty.", description="Placeholder for empty documents")
    debounce_seconds:   float = Field(default=1.0, ge=0, description="Quiet period before an edit is saved")
    save_grace_seconds: float = Field(default=0.1, ge=0, description="Delay before Saving returns to Idle")
    store_backend:      str = Field(default="file", pattern="^(file|sql|memory)$", description="file, sql or memory")
    docs_dir:           str = Field(default=".",  description="Root directory for the file store")
    db_url:             str = Field(default="sqlite:///tsumugi.db", description="Database URL for the sql store")
    max_versions:       int = Field(default=10, ge=0, description="Max stored versions per doc; 0 disables")
    log_level:          str = Field(default="WARNING", pattern="^(DEBUG|INFO|WARNING|ERROR)$")


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then TSUMUGI_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
