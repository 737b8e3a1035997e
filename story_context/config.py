"""Engine settings and the model capability registry.

Configuration is a single JSON file whose stored values are merged over the
defaults below. Its location comes from the STORY_CONTEXT_CONFIG environment
variable (entry points load .env first), or an explicit path.

    {
      "engine": {"flat_story_limit": 50, "cache_ttl": "1h", ...},
      "models": [
        {"id": "claude-sonnet-4-5", "provider": "anthropic",
         "context_size": 200000,
         "capabilities": {"supports_prompt_caching": true,
                          "treats_current_container_as_always_full": true}}
      ],
      "llm_connections": [
        {"name": "claude", "provider_url": "https://api.anthropic.com",
         "api_key": "...", "chat_format": "anthropic", "model": "claude-sonnet-4-5"}
      ]
    }

Model entries are replaced by id; unknown ids keep the defaults. Capabilities
are always looked up by exact model id, never inferred from the name. Stored
llm_connections replace the (empty) default list.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from story_context.models import CacheTTL, ModelCapabilities

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STORY_CONTEXT_CONFIG"


class EngineSettings(BaseModel):
    full_tail_turns: int = 7  # last N turns always full content
    paragraph_tail_turns: int = 14  # beyond this, sentence summaries
    flat_story_limit: int = 50
    cache_tail_blocks: int = 3
    cache_ttl: CacheTTL = "1h"
    max_query_history: int = 5
    smart_context_timeout: float = 60.0  # seconds
    chars_per_token: float = 4.0


class ModelEntry(BaseModel):
    id: str
    provider: str = ""
    context_size: int | None = None
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)


_CACHING_FULL = ModelCapabilities(
    supports_prompt_caching=True,
    treats_current_container_as_always_full=True,
)

DEFAULT_MODELS: list[ModelEntry] = [
    ModelEntry(id=model_id, provider=provider, context_size=200_000, capabilities=_CACHING_FULL)
    for provider, model_id in [
        ("anthropic", "claude-opus-4-1"),
        ("anthropic", "claude-sonnet-4-5"),
        ("anthropic", "claude-sonnet-4-0"),
        ("anthropic", "claude-3-7-sonnet-latest"),
        ("anthropic", "claude-3-5-haiku-latest"),
        ("openrouter", "anthropic/claude-opus-4.1"),
        ("openrouter", "anthropic/claude-sonnet-4.5"),
        ("openrouter", "anthropic/claude-sonnet-4"),
        ("openrouter", "anthropic/claude-3.7-sonnet"),
    ]
]


class ModelRegistry:
    """Exact-id lookup of model capabilities."""

    def __init__(self, entries: list[ModelEntry] | None = None) -> None:
        self._entries: dict[str, ModelEntry] = {e.id: e for e in (entries or [])}

    @classmethod
    def default(cls) -> ModelRegistry:
        return cls(DEFAULT_MODELS)

    def get(self, model_id: str | None) -> ModelEntry | None:
        if not model_id:
            return None
        return self._entries.get(model_id)

    def capabilities(self, model_id: str | None) -> ModelCapabilities:
        """Capabilities for a model id; unknown models get the conservative default."""
        entry = self.get(model_id)
        if entry is None:
            if model_id:
                logger.debug("no capability entry for model %r, using defaults", model_id)
            return ModelCapabilities()
        return entry.capabilities

    def entries(self) -> list[ModelEntry]:
        return list(self._entries.values())


class LLMConnection(BaseModel):
    """A generation backend the CLI can stream an assembled context to."""

    name: str
    provider_url: str
    api_key: str = ""
    chat_format: Literal["openai", "anthropic"] = "openai"
    model: str = ""  # used when the caller names no model


class AppConfig(BaseModel):
    engine: EngineSettings = Field(default_factory=EngineSettings)
    models: list[ModelEntry] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    llm_connections: list[LLMConnection] = Field(default_factory=list)

    def registry(self) -> ModelRegistry:
        return ModelRegistry(self.models)

    def connection(self, name: str | None = None) -> LLMConnection | None:
        """Connection by name, or the first one when no name is given."""
        if name is None:
            return self.llm_connections[0] if self.llm_connections else None
        return next((c for c in self.llm_connections if c.name == name), None)


def config_path() -> Path | None:
    value = os.getenv(CONFIG_ENV_VAR, "")
    return Path(value) if value else None


def _merge(config: AppConfig, stored: dict[str, Any]) -> AppConfig:
    engine = config.engine.model_dump()
    if isinstance(stored.get("engine"), dict):
        engine.update(stored["engine"])

    models = {m.id: m for m in config.models}
    for raw in stored.get("models", []):
        entry = ModelEntry.model_validate(raw)
        models[entry.id] = entry

    connections = config.llm_connections
    if isinstance(stored.get("llm_connections"), list):
        connections = [LLMConnection.model_validate(c) for c in stored["llm_connections"]]

    return AppConfig(
        engine=EngineSettings.model_validate(engine),
        models=list(models.values()),
        llm_connections=connections,
    )


def load_config(path: Path | None = None) -> AppConfig:
    """Read config, returning defaults merged with stored values."""
    path = path or config_path()
    config = AppConfig()
    if path is None or not path.is_file():
        return config
    stored = json.loads(path.read_text())
    logger.debug("loaded config from %s", path)
    return _merge(config, stored)


def update_config(fields: dict[str, Any], path: Path | None = None) -> AppConfig:
    """Merge fields into config and persist. Returns the full config."""
    path = path or config_path()
    if path is None:
        raise ValueError(f"No config path given and {CONFIG_ENV_VAR} is not set")
    config = _merge(load_config(path), fields)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(indent=2))
    return config
