"""Configuration loading and validation."""

import copy
import logging
import os
import sys

import yaml

from imagevol.provisioning.client import DEFAULT_API_URL

logger = logging.getLogger(__name__)

API_KEY_ENV_VAR = "IMAGEVOL_API_KEY"

DEFAULT_CONFIG = {
    "compute": {
        "api_url": DEFAULT_API_URL,
        "region": None,
        "timeout": 60,
    },
    "waiters": {
        "import_task": {"delay": 15, "max_attempts": 40},
        "volume_available": {"delay": 15, "max_attempts": 40},
    },
}


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into a copy of *base*."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str | None = None) -> dict:
    """Load configuration from a YAML file, filling in defaults.

    With no path, the defaults are returned unchanged.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    try:
        with open(os.path.expanduser(config_path)) as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(f"Error: Config file '{config_path}' not found.")
        sys.exit(1)
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML config: {e}")
        sys.exit(1)

    if not isinstance(config, dict):
        logger.error(f"Error: Config file '{config_path}' must contain a mapping.")
        sys.exit(1)
    return _merge(DEFAULT_CONFIG, config)


def validate_config(config: dict) -> None:
    """Validate the compute endpoint and waiter settings."""
    if not config["compute"].get("api_url"):
        logger.error("Error: Missing 'api_url' in 'compute' section.")
        sys.exit(1)

    for name, waiter in config["waiters"].items():
        delay = waiter.get("delay")
        attempts = waiter.get("max_attempts")
        if not isinstance(delay, (int, float)) or delay < 0:
            logger.error(f"Error: waiters.{name}.delay must be a non-negative number (got {delay!r}).")
            sys.exit(1)
        if not isinstance(attempts, int) or attempts < 1:
            logger.error(f"Error: waiters.{name}.max_attempts must be a positive integer (got {attempts!r}).")
            sys.exit(1)


def resolve_api_key(args_api_key=None, dry_run=False):
    """Return the API key from the CLI flag or the IMAGEVOL_API_KEY env var.

    Exits if neither is set, unless this is a dry run.
    """
    api_key = args_api_key or os.environ.get(API_KEY_ENV_VAR)
    if not api_key and not dry_run:
        logger.error(f"Error: compute API key required. Use --api-key or set {API_KEY_ENV_VAR}.")
        sys.exit(1)
    return api_key or ""
