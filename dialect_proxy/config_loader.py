"""Configuration loading from YAML files with environment variable support.

A config file ``configs/config_<name>.yaml`` reads its secrets from
``configs/.env_<name>``; any other file name reads ``.env`` beside it.
``${VAR}`` and ``$VAR`` placeholders in string values are filled from that
file first and the process environment second.
"""

import logging
import os
import re
from collections import ChainMap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("dialect-proxy")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True)
class ServerSettings:
    """Where the proxy listens and how loudly it logs."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: Optional[str] = None


def _project_path(path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Pick the env file paired with ``config_path`` unless one is given."""
    if env_path:
        return _project_path(env_path)
    name = config_path.stem
    if name.startswith("config_"):
        return config_path.with_name(".env_" + name[len("config_"):])
    return config_path.with_name(".env")


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Read the YAML config and fill in environment placeholders.

    Args:
        path: Config file. Falls back to ``$DIALECT_PROXY_CONFIG``, then
            ``configs/config_default.yaml`` under the project root.
        env_path: Env file to use instead of the paired one.
        substitute_env: Leave placeholders untouched when False.

    Raises:
        ConfigurationError: If the config file is missing.
    """
    config_path = _project_path(path or os.getenv("DIALECT_PROXY_CONFIG") or DEFAULT_CONFIG_PATH)
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")

    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    logger.info(f"Loaded configuration from {config_path}")
    if not substitute_env:
        return data

    env_file = resolve_env_path(config_path, env_path)
    file_values: dict[str, str] = {}
    if env_file.is_file():
        logger.info(f"Reading placeholders from {env_file}")
        file_values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
    return _substitute_env_vars(data, file_values)


def _substitute_env_vars(obj: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Fill ``${VAR}``/``$VAR`` in every string of a parsed config.

    Unknown variables keep their literal placeholder, which upstream
    providers will then reject as an invalid key.
    """
    lookup = ChainMap(dict(env_values or {}), os.environ)

    def fill(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        if name in lookup:
            return lookup[name]
        logger.warning(f"Config placeholder ${name} is not set in the env file or environment")
        return match.group(0)

    def walk(value: Any) -> Any:
        if isinstance(value, str):
            return _ENV_PATTERN.sub(fill, value)
        if isinstance(value, dict):
            return {key: walk(item) for key, item in value.items()}
        if isinstance(value, list):
            return [walk(item) for item in value]
        return value

    return walk(obj)


def resolve_server_settings(config: Mapping[str, Any]) -> ServerSettings:
    """Read bind address and log level; environment variables take priority.

    Environment variables: DIALECT_PROXY_HOST, DIALECT_PROXY_PORT,
    DIALECT_PROXY_LOG_LEVEL.
    """
    proxy_settings = config.get("proxy_settings") or {}
    server_cfg = proxy_settings.get("server") or {}

    host = os.getenv("DIALECT_PROXY_HOST") or str(server_cfg.get("host", DEFAULT_HOST))

    port = DEFAULT_PORT
    for candidate in (os.getenv("DIALECT_PROXY_PORT"), server_cfg.get("port")):
        if candidate is None:
            continue
        try:
            port = int(candidate)
            break
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid port value: {candidate!r}")

    log_level = os.getenv("DIALECT_PROXY_LOG_LEVEL") or proxy_settings.get("log_level")
    return ServerSettings(host=host, port=port, log_level=log_level)
