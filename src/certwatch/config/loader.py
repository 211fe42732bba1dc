import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from certwatch.core.models import CertwatchSettings
from certwatch.utils.errors import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

ALLOWED_SECTIONS = {"certwatch"}


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def load_config(path: Path) -> Dict[str, Any]:
    """
    Load a certwatch YAML file with environment variable interpolation.

    Only the 'certwatch' section is kept. A missing file yields an empty dict;
    a file that cannot be read or parsed raises ConfigError.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot load config file {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")

    filtered_config = {k: v for k, v in full_config.items() if k in ALLOWED_SECTIONS}

    section = filtered_config.get("certwatch")
    if section is not None and not isinstance(section, dict):
        raise ConfigError(f"Section 'certwatch' in {path} must be a mapping.")

    return filtered_config


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> CertwatchSettings:
    """
    Build settings from the config file, CLI overrides and the environment.

    Overrides set to None are treated as not given, so the file value,
    the CERTWATCH_* environment variable or the default applies.
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        data.update(load_config(config_path).get("certwatch") or {})

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)) and not value:
            continue
        data[key] = list(value) if isinstance(value, tuple) else value

    try:
        return CertwatchSettings(**data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid configuration: " + "; ".join(problems)
