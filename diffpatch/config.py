"""
Option loading for the CLI and library callers.

Values are layered, later layers winning:

1. model defaults (`ApplyOptions` / `PatchOptions`)
2. `DIFFPATCH_*` environment variables
3. a YAML options file
4. explicit keyword overrides (CLI flags); `None` means "not given"
"""

import logging
import os
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import ValidationError

from diffpatch.engine.models import ApplyOptions, PatchOptions
from diffpatch.errors import ConfigError

logger = logging.getLogger(__name__)

OptionsT = TypeVar("OptionsT", bound=ApplyOptions)

BOOL_ENV_VARS = {
    "ignore_whitespace": "DIFFPATCH_IGNORE_WHITESPACE",
    "ignore_case": "DIFFPATCH_IGNORE_CASE",
    "create_backup": "DIFFPATCH_CREATE_BACKUP",
    "atomic": "DIFFPATCH_ATOMIC",
    "continue_on_error": "DIFFPATCH_CONTINUE_ON_ERROR",
}


def _env_bool(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return None


def env_overrides() -> dict[str, Any]:
    values: dict[str, Any] = {}

    fuzzy = _env_int("DIFFPATCH_FUZZY")
    if fuzzy is not None:
        values["fuzzy"] = fuzzy

    strategy = os.getenv("DIFFPATCH_STRATEGY")
    if strategy:
        values["strategy"] = strategy.lower()

    for field, name in BOOL_ENV_VARS.items():
        flag = _env_bool(name)
        if flag is not None:
            values[field] = flag

    distance = _env_int("DIFFPATCH_MATCH_DISTANCE")
    if distance is not None:
        values["approximate"] = {"match_distance": distance}

    return values


def load_options_file(path: Path | str) -> dict[str, Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read options file {path}: {e}", path=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in options file {path}: {e}", path=str(path)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Options file {path} must contain a mapping", path=str(path))
    return data


def _merge(base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load(model: type[OptionsT], config_path: Path | str | None, overrides: dict[str, Any]) -> OptionsT:
    # Environment values for fields the model lacks (e.g. atomic on ApplyOptions) are dropped
    values = {k: v for k, v in env_overrides().items() if k in model.model_fields}

    if config_path is not None:
        values = _merge(values, load_options_file(config_path))

    values = _merge(values, {k: v for k, v in overrides.items() if v is not None})

    try:
        options = model.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid options: {e}") from e

    logger.debug("Loaded %s: %s", model.__name__, options.model_dump(mode="json"))
    return options


def load_apply_options(config_path: Path | str | None = None, **overrides: Any) -> ApplyOptions:
    return _load(ApplyOptions, config_path, overrides)


def load_patch_options(config_path: Path | str | None = None, **overrides: Any) -> PatchOptions:
    return _load(PatchOptions, config_path, overrides)
