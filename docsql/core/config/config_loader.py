"""Configuration loader for the YAML config file.

Loads configuration from config/docsql.yaml. The file is read once and
cached; call reload_configs() to pick up edits.
"""

import logging
import yaml
from pathlib import Path
from functools import lru_cache
from typing import Any, Dict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "docsql.yaml"


def get_config_path() -> Path:
    """Get path to config directory.

    Searches in order:
    1. Relative to this file's project root
    2. Current working directory
    """
    # config_loader.py -> config -> core -> docsql -> project_root
    project_root = Path(__file__).parent.parent.parent.parent
    config_path = project_root / "config"

    if config_path.exists():
        return config_path

    cwd_config = Path.cwd() / "config"
    if cwd_config.exists():
        return cwd_config

    return config_path


def _load_yaml_file(filename: str) -> Dict[str, Any]:
    """Load a YAML config file.

    Args:
        filename: Name of the YAML file (e.g., 'docsql.yaml')

    Returns:
        Parsed YAML as dictionary, empty dict if file not found or unreadable
    """
    config_path = get_config_path() / filename

    if not config_path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return {}

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
            logger.debug(f"Loaded config from {config_path}")
            return data or {}
    except (yaml.YAMLError, OSError) as e:
        logger.error(f"Error loading {config_path}: {e}")
        return {}


@lru_cache(maxsize=1)
def load_unified_config() -> Dict[str, Any]:
    """Load configuration from config/docsql.yaml.

    Returns:
        Dictionary with all configuration sections
    """
    return _load_yaml_file(CONFIG_FILENAME)


def _get_section(section: str) -> Dict[str, Any]:
    value = load_unified_config().get(section)
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Config section '{section}' is not a mapping, ignoring it")
        return {}
    return value


def reload_configs() -> None:
    """Clear cached configuration so the next access re-reads the file."""
    load_unified_config.cache_clear()
    logger.info("Configuration cache cleared")


def get_search_config() -> Dict[str, Any]:
    """Hybrid search section."""
    return _get_section("search")


def get_sandbox_config() -> Dict[str, Any]:
    """SQL sandbox section (pools, limits, timeouts)."""
    return _get_section("sandbox")


def get_router_config() -> Dict[str, Any]:
    """Agent router section."""
    return _get_section("router")


def get_config_value(section: str, key: str, default: Any = None) -> Any:
    """Get a single value from a config section.

    Args:
        section: Top-level section name (search, sandbox, router)
        key: Key inside the section
        default: Value returned when section or key is missing

    Returns:
        Configured value or default
    """
    return _get_section(section).get(key, default)
