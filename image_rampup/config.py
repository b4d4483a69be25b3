"""Configuration management for image-rampup.

Values are looked up through a fallback chain: environment variable, then the
options object handed to `initialize()`, then the `[rampup]` section of the
INI file named by IMAGE_RAMPUP_CONFIG, then the built-in default.
"""

from __future__ import annotations

import configparser
import logging
import os
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "IMAGE_RAMPUP_CONFIG"
CONFIG_SECTION = "rampup"

PLAN_ORDER_POLICIES = ("normalize", "reject", "preserve")

# Module-level config cache
_config: Optional[Dict[str, Any]] = None
_options: Optional[Any] = None  # Options object of the embedding service


def initialize(options: Any) -> None:
    """Initialize config module with the host service's parsed options.

    Attributes are looked up as ``rampup_<key>``.

    Args:
        options: Parsed options object (e.g. an argparse Namespace)
    """
    global _options
    _options = options
    logger.debug("Config module initialized with options object")


def _parse_config_file(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Parse the [rampup] section of an INI file.

    Args:
        config_file: Path to config file. If None, nothing is read.

    Returns:
        Dict of raw string values (empty when the file or section is missing)
    """
    if not config_file:
        return {}

    parser = configparser.ConfigParser()
    try:
        read = parser.read(config_file)
    except configparser.Error as exc:
        logger.warning("Failed to parse config file %s: %s", config_file, exc)
        return {}

    if not read:
        logger.warning("Config file %s not found, using defaults", config_file)
        return {}
    if not parser.has_section(CONFIG_SECTION):
        logger.debug("No [%s] section in %s", CONFIG_SECTION, config_file)
        return {}
    return dict(parser.items(CONFIG_SECTION))


def _get_config() -> Dict[str, Any]:
    """Get parsed config dict, initializing if needed."""
    global _config
    if _config is None:
        _config = _parse_config_file(os.environ.get(CONFIG_ENV_VAR))
    return _config


def _get_config_value(
    key: str,
    default: Any,
    env_var: Optional[str] = None,
    converter: Optional[Callable[[Any], Any]] = None,
) -> Any:
    """Get config value with fallback chain: env var -> options -> config file -> default.

    Args:
        key: Config key name (in [rampup] section)
        default: Default value if not found or invalid
        env_var: Optional environment variable name
        converter: Optional function to convert string value (e.g., int, bool)

    Returns:
        Config value (converted if converter provided)
    """
    candidates = []
    if env_var:
        env_value = os.environ.get(env_var)
        if env_value is not None:
            candidates.append((env_var, env_value))

    if _options is not None:
        option_key = f"rampup_{key}"
        if hasattr(_options, option_key):
            candidates.append((option_key, getattr(_options, option_key)))

    value = _get_config().get(key)
    if value is not None:
        candidates.append((key, value))

    if not candidates:
        return default

    source, value = candidates[0]
    if converter:
        try:
            return converter(value)
        except (ValueError, TypeError):
            logger.warning("Invalid value for %s: %s, using default", source, value)
            return default
    return value


def _parse_bool(value: Any) -> bool:
    """Parse boolean value from config (string or bool).

    Accepts: True, "true", "1", "yes", "on" -> True; anything else -> False
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _parse_plan_order(value: Any) -> str:
    policy = str(value).strip().lower()
    if policy not in PLAN_ORDER_POLICIES:
        raise ValueError(f"unknown plan order policy {value!r}")
    return policy


def _parse_positive_int(value: Any) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"expected a positive integer, got {value!r}")
    return number


def rampup_plan_order() -> str:
    """How to treat rampup plans not sorted by ascending percentage.

    'normalize' sorts them, 'reject' fails them, 'preserve' walks them as given.
    """
    return _get_config_value(
        "plan_order",
        "normalize",
        env_var="IMAGE_RAMPUP_PLAN_ORDER",
        converter=_parse_plan_order,
    )


def rampup_monitoring_enabled() -> bool:
    """Enable the monitoring/metadata HTTP server."""
    return _get_config_value(
        "monitoring_enabled",
        False,
        env_var="IMAGE_RAMPUP_MONITORING_ENABLED",
        converter=_parse_bool,
    )


def rampup_monitoring_bind() -> str:
    """Monitoring server bind address (default: "127.0.0.1:8080")."""
    value = _get_config_value(
        "monitoring_bind",
        "127.0.0.1:8080",
        env_var="IMAGE_RAMPUP_MONITORING_BIND",
    )
    if ":" not in value:
        logger.warning("Invalid monitoring_bind format, using default: 127.0.0.1:8080")
        return "127.0.0.1:8080"
    return value


def rampup_monitoring_history_ttl() -> int:
    """Resolution history TTL in seconds (default: 3600)."""
    return _get_config_value(
        "monitoring_history_ttl",
        3600,
        env_var="IMAGE_RAMPUP_MONITORING_HISTORY_TTL",
        converter=_parse_positive_int,
    )


def rampup_monitoring_history_limit() -> int:
    """Maximum number of resolution records kept (default: 500)."""
    return _get_config_value(
        "monitoring_history_limit",
        500,
        env_var="IMAGE_RAMPUP_MONITORING_HISTORY_LIMIT",
        converter=_parse_positive_int,
    )


def reset_config() -> None:
    """Reset config cache (useful for testing)."""
    global _config, _options
    _config = None
    _options = None
