"""App configuration: LLM connection, objective source, rate limit, session limits.

Values are layered, last one wins:
  1. _CONFIG_DEFAULTS
  2. the JSON file at CONFIG_PATH (default ./config.json), if present
  3. environment variables (a .env file at the repo root is loaded first)
"""

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.json"

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm_connection": {
        "provider_url": "https://api.openai.com",
        "api_key": "",
        "provider_format": "openai",
        "model": "gpt-4.1",
        "temperature": 0.8,
        "timeout": 60,
    },
    "objective_source": "fixed",
    "rate_limit_seconds": 1.0,
    "max_sessions": 500,
    "session_idle_minutes": 60,
}

# top-level keys stored as plain values
_SCALAR_KEYS = ("objective_source", "rate_limit_seconds", "max_sessions", "session_idle_minutes")

# env var → key inside llm_connection
_CONNECTION_ENV = {
    "LLM_PROVIDER_URL": "provider_url",
    "LLM_API_KEY": "api_key",
    "LLM_PROVIDER_FORMAT": "provider_format",
    "LLM_MODEL": "model",
}


def config_path() -> Path:
    return Path(os.getenv("CONFIG_PATH", str(DEFAULT_CONFIG_PATH)))


def get_config(path: Path | None = None) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env."""
    config: dict[str, Any] = {
        "llm_connection": dict(_CONFIG_DEFAULTS["llm_connection"]),
        **{key: _CONFIG_DEFAULTS[key] for key in _SCALAR_KEYS},
    }
    path = path or config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        if isinstance(stored.get("llm_connection"), dict):
            config["llm_connection"].update(stored["llm_connection"])
        for key in _SCALAR_KEYS:
            if key in stored:
                config[key] = stored[key]

    for env_name, key in _CONNECTION_ENV.items():
        value = os.getenv(env_name)
        if value:
            config["llm_connection"][key] = value
    # OPENAI_API_KEY is what most setups already export
    if not config["llm_connection"]["api_key"]:
        config["llm_connection"]["api_key"] = os.getenv("OPENAI_API_KEY", "")
    if os.getenv("OBJECTIVE_SOURCE"):
        config["objective_source"] = os.environ["OBJECTIVE_SOURCE"]
    return config


def update_config(fields: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    """Merge fields into the stored config file and persist. Returns full config."""
    path = path or config_path()
    stored: dict[str, Any] = json.loads(path.read_text()) if path.is_file() else {}
    if "llm_connection" in fields:
        stored.setdefault("llm_connection", {}).update(fields["llm_connection"])
    for key in _SCALAR_KEYS:
        if key in fields:
            stored[key] = fields[key]
    path.write_text(json.dumps(stored, indent=2))
    return get_config(path)
