"""Runtime configuration for buildflow - settings that are not part of the build file."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from buildflow.errors import ConfigError
from buildflow.utils.constants import (
    BUILD_FILE_CANDIDATES,
    COVERAGE_DIR,
    DEFAULT_BUILD_FILE,
    DEFAULT_TASK_TIMEOUT,
    ENV_PREFIX,
    RUNTIME_CONFIG_FILE,
    STATE_DIR,
)
from buildflow.utils.logging import logger

DEFAULTS = {
    "paths": {
        "build_file": DEFAULT_BUILD_FILE,
        "state_dir": str(STATE_DIR),
        "coverage_dir": str(COVERAGE_DIR),
    },
    "timeouts": {
        # Seconds; per-task overrides are keyed by task name
        "default": DEFAULT_TASK_TIMEOUT,
    },
    "coverage": {
        "summarizer": "nested",
        "reporters": ["text", "json", "html"],
    },
}

SUMMARIZERS = ("flat", "nested")
REPORTERS = ("text", "json", "html")

# Sections whose keys are not fixed by DEFAULTS
OPEN_SECTIONS = {"timeouts"}


def _merge_file(cfg: dict[str, Any], path: Path) -> None:
    try:
        if not path.exists():
            return
        with open(path, encoding="utf-8") as f:
            user = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load config file from {path}: {e}")
        logger.info("Continuing with default configuration")
        return

    if not isinstance(user, dict):
        logger.warning(f"Ignoring {path}: top level must be an object")
        return

    for section in cfg:
        if section not in user or not isinstance(user[section], dict):
            continue
        for key, value in user[section].items():
            if key in cfg[section]:
                if isinstance(value, type(cfg[section][key])):
                    cfg[section][key] = value
                else:
                    logger.warning(f"Ignoring {section}.{key} in {path}: expected {type(cfg[section][key]).__name__}")
            elif section in OPEN_SECTIONS and isinstance(value, (int, float)):
                cfg[section][key] = value


def _env_var(section: str, key: str) -> str:
    return f"{ENV_PREFIX}_{section.upper()}_{key.upper().replace('-', '_')}"


def _merge_env(cfg: dict[str, Any]) -> None:
    for section in cfg:
        for key in cfg[section]:
            env_var = _env_var(section, key)
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]
            default_value = cfg[section][key]
            try:
                if isinstance(default_value, bool):
                    cfg[section][key] = value.lower() in ("1", "true", "yes")
                elif isinstance(default_value, int):
                    cfg[section][key] = int(value)
                elif isinstance(default_value, float):
                    cfg[section][key] = float(value)
                elif isinstance(default_value, list):
                    cfg[section][key] = [v.strip() for v in value.split(",") if v.strip()]
                else:
                    cfg[section][key] = value
            except ValueError as e:
                logger.warning(f"Invalid value for environment variable {env_var}: '{value}' - {e}")
                logger.info(f"Using default value: {cfg[section][key]}")


def _check_coverage(cfg: dict[str, Any]) -> None:
    section = cfg["coverage"]
    if section["summarizer"] not in SUMMARIZERS:
        logger.warning(f"Unknown coverage summarizer '{section['summarizer']}', using 'nested'")
        section["summarizer"] = "nested"
    unknown = [r for r in section["reporters"] if r not in REPORTERS]
    if unknown:
        logger.warning(f"Ignoring unknown coverage reporters: {unknown}")
        section["reporters"] = [r for r in section["reporters"] if r in REPORTERS]


def load_runtime_config(root: str | Path = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .buildflow/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (BUILDFLOW_<SECTION>_<KEY>)
    2. .buildflow/config.json file
    3. Built-in defaults

    Args:
        root: Project root to look for the config file in

    Returns:
        Configuration dictionary with merged values
    """
    cfg = copy.deepcopy(DEFAULTS)
    _merge_file(cfg, Path(root) / RUNTIME_CONFIG_FILE)
    _merge_env(cfg)
    _check_coverage(cfg)
    return cfg


def timeout_for(cfg: dict[str, Any], task_name: str) -> float:
    """Timeout in seconds for ``task_name``: per-task override, else the default."""
    timeouts = cfg.get("timeouts", {})
    return float(timeouts.get(task_name, timeouts.get("default", DEFAULT_TASK_TIMEOUT)))


def find_build_file(cfg: dict[str, Any], explicit: str | Path | None = None, root: str | Path = ".") -> Path:
    """Locate the build file: explicit path, configured path, then the default names.

    Raises:
        ConfigError: If no build file exists.
    """
    if explicit is not None:
        path = Path(explicit)
        if not path.exists():
            raise ConfigError(f"Build file not found: {path}")
        return path

    root = Path(root)
    candidates = [cfg["paths"]["build_file"], *BUILD_FILE_CANDIDATES]
    for name in dict.fromkeys(candidates):
        path = root / name
        if path.exists():
            return path
    raise ConfigError(f"No build file found in {root.resolve()} (looked for {', '.join(dict.fromkeys(candidates))})")
