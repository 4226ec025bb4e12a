"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    PACKAGE_ERROR = 3


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    MANIFEST_FILENAME = "METHODS.toml"
    LOCK_FILENAME = "methods.lock"
    BUNDLE_EXTENSION = ".mthds"
    METHODS_DIRNAME = "methods"
    MTHDS_STANDARD_VERSION = "1.0.0"
    RESERVED_DOMAINS = ("mthds", "native", "pipelex")
    CROSS_PACKAGE_MARKER = "->"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "MTHDS_LOG_LEVEL"
    ENV_CONFIG = "MTHDS_CONFIG"
    ENV_CACHE_ROOT = "MTHDS_CACHE_ROOT"
    DEFAULT_CONFIG_PATH = os.path.join("~", ".mthds", "config.yml")

    # Package cache
    CACHE_ROOT = os.path.join("~", ".mthds", "packages")

    # VCS (git subprocess) timeouts in seconds
    GIT_LS_REMOTE_TIMEOUT_SEC = 60
    GIT_CLONE_TIMEOUT_SEC = 120

    # Dependency resolution
    RESOLVER_MAX_WORKERS = 4

    # Repository API constants
    GITHUB_API_BASE = "https://api.github.com"
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    GITHUB_USER_AGENT = "mthds-package"
    DISCOVERY_BATCH_SIZE = 5
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300


# YAML keys -> Constants attribute, with the expected type.
_CONFIG_KEYS = {
    ("cache", "root"): ("CACHE_ROOT", str),
    ("git", "ls_remote_timeout"): ("GIT_LS_REMOTE_TIMEOUT_SEC", int),
    ("git", "clone_timeout"): ("GIT_CLONE_TIMEOUT_SEC", int),
    ("resolver", "max_workers"): ("RESOLVER_MAX_WORKERS", int),
    ("github", "api_base"): ("GITHUB_API_BASE", str),
    ("http", "request_timeout"): ("REQUEST_TIMEOUT", int),
    ("http", "retry_max"): ("HTTP_RETRY_MAX", int),
}


def _resolve_config_path(config_path: Optional[str]) -> Optional[str]:
    """Pick the config file: explicit path, then env var, then the default location."""
    if config_path:
        return config_path
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        return env_path
    default_path = os.path.expanduser(Constants.DEFAULT_CONFIG_PATH)
    if os.path.isfile(default_path):
        return default_path
    return None


def load_yaml_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML configuration and apply recognised keys onto Constants.

    Example file::

        cache:
          root: ~/.cache/mthds
        git:
          clone_timeout: 300
        resolver:
          max_workers: 8

    Args:
        config_path: Explicit path from --config. Falls back to $MTHDS_CONFIG,
            then ~/.mthds/config.yml.

    Returns:
        The raw configuration mapping (empty when no file is found).
    """
    path = _resolve_config_path(config_path)
    if not path:
        return {}
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return {}

    import yaml  # pylint: disable=import-outside-toplevel

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load config %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", path)
        return {}

    for (section, key), (attr, cast) in _CONFIG_KEYS.items():
        section_data = data.get(section)
        if not isinstance(section_data, dict) or key not in section_data:
            continue
        try:
            setattr(Constants, attr, cast(section_data[key]))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid config value %s.%s=%r", section, key, section_data[key])
    return data


def apply_env_overrides() -> None:
    """Apply environment variable overrides (highest precedence after CLI flags)."""
    cache_root = os.environ.get(Constants.ENV_CACHE_ROOT)
    if cache_root and cache_root.strip():
        Constants.CACHE_ROOT = cache_root.strip()


def default_cache_root() -> str:
    """Return the configured cache root with ~ expanded."""
    return os.path.expanduser(Constants.CACHE_ROOT)
