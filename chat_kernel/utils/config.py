import json
import os
from pathlib import Path

from dotenv import load_dotenv

from chat_kernel.models.config import AppConfig


CONFIG_PATH_ENV = "CHAT_KERNEL_CONFIG"
BASE_URL_ENV = "OPENROUTER_BASE_URL"
LOG_LEVEL_ENV = "CHAT_KERNEL_LOG_LEVEL"

# env var -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    BASE_URL_ENV: ("openrouter", "base_url"),
    LOG_LEVEL_ENV: ("logging", "level"),
}

_config: AppConfig | None = None
_config_path: Path | None = None


def get_project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent.parent


def _default_config_path() -> Path:
    override = os.getenv(CONFIG_PATH_ENV, "")
    if override:
        return Path(override)
    return get_project_root() / "config.json"


def _apply_env_overrides(data: dict) -> dict:
    for variable, (section, field) in ENV_OVERRIDES.items():
        value = os.getenv(variable, "")
        if value:
            data.setdefault(section, {})[field] = value
    return data


def load_config(config_path: Path | None = None, env_path: Path | None = None) -> AppConfig:
    """
    Load configuration for the client.

    The .env file is loaded first, so it can point CHAT_KERNEL_CONFIG at a
    different JSON file. Environment overrides are applied on top of the
    JSON values and validated with them.

    Args:
        config_path: JSON config file; missing file means defaults
        env_path: .env file read with python-dotenv

    Returns:
        The loaded config, also cached for get_config()
    """
    global _config, _config_path

    load_dotenv(env_path or get_project_root() / ".env")

    _config_path = config_path or _default_config_path()

    data: dict = {}
    if _config_path.exists():
        with open(_config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

    _config = AppConfig.model_validate(_apply_env_overrides(data))
    return _config


def get_config() -> AppConfig:
    """Get current configuration, loading it on first use."""
    if _config is None:
        return load_config()
    return _config


def save_config(config: AppConfig | None = None) -> Path:
    """Write configuration to the JSON file it was loaded from."""
    global _config, _config_path

    if config is not None:
        _config = config
    if _config is None:
        raise ValueError("No configuration to save")
    if _config_path is None:
        _config_path = _default_config_path()

    _config_path.write_text(_config.model_dump_json(indent=2), encoding="utf-8")
    return _config_path


def reset_config() -> None:
    global _config, _config_path
    _config = None
    _config_path = None
