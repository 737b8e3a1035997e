"""Process-wide backend state: the story store and the settings file location."""

from pathlib import Path

from story_context.config import AppConfig, config_path, load_config, update_config
from story_context.storage import StoryStore

_data_dir: Path | None = None
_store: StoryStore | None = None
_config_file: Path | None = None


def init_state(data_dir: Path, config_file: Path | None = None) -> None:
    """Point the backend at a data directory.

    Settings live in STORY_CONTEXT_CONFIG when set, else {data_dir}/config.json.
    """
    global _data_dir, _store, _config_file
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    _store = StoryStore(data_dir)
    _config_file = config_file or config_path() or data_dir / "config.json"


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_state() before using the backend"
    return _data_dir


def store() -> StoryStore:
    assert _store is not None, "Call init_state() before using the backend"
    return _store


def config_file() -> Path:
    assert _config_file is not None, "Call init_state() before using the backend"
    return _config_file


def get_settings() -> AppConfig:
    return load_config(config_file())


def update_settings(fields: dict) -> AppConfig:
    return update_config(fields, config_file())
