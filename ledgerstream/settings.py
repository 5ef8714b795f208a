"""Engine settings loader.

Loads engine defaults from config/defaults.toml, then applies environment
overrides. Environment variables are loaded with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.ledgerstream/.env
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from ledgerstream.errors import ConfigError
from ledgerstream.schemas.config import EngineConfig

logger = logging.getLogger(__name__)

# Default config directory inside the package
_CONFIG_DIR = Path(__file__).parent / "config"

# Directory for user-level configuration
LEDGERSTREAM_HOME = Path.home() / ".ledgerstream"
ENV_FILE = LEDGERSTREAM_HOME / ".env"

# Environment variable -> EngineConfig field
_ENV_OVERRIDES: dict[str, str] = {
    "LEDGERSTREAM_API_BASE": "api_base",
    "LEDGERSTREAM_DB_PATH": "message_db_path",
}


def load_env() -> None:
    """Load ~/.ledgerstream/.env and ./.env into os.environ.

    Existing env vars are NOT overwritten, and earlier files win over
    later ones.
    """
    for env_file in (ENV_FILE, Path.cwd() / ".env"):
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine settings from a TOML file plus environment overrides.

    Args:
        config_path: Path to a TOML file with an [engine] table. Defaults
            to the packaged config/defaults.toml.

    Returns:
        EngineConfig with file values, overridden by environment variables.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ConfigError: If the TOML structure or a value is invalid.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    section = raw.get("engine", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[engine] in {path} must be a table")

    values = dict(section)
    for env_var, field in _ENV_OVERRIDES.items():
        override = os.environ.get(env_var)
        if override:
            values[field] = override

    try:
        return EngineConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine config in {path}: {e}") from e
