"""YAML configuration loader.

Overlays a YAML file on top of the env-derived CodaConfig. Keys that are
absent keep their current value.

Example YAML (``.coda/coda.yaml``):
    microagents:
      dir: .coda/microagents
      strict_triggers: true

    commands:
      dir: .coda/commands

    storage:
      backend: json
      sessions_dir: ~/.coda/sessions

    rewind:
      timeout_seconds: 15

    logging:
      level: DEBUG
      dir: ~/.coda/logs
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

import yaml

from .config import CodaConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "coda.yaml"

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _to_bool(value) -> bool:
    """Accept YAML booleans and the string spellings the env flags use."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


# (section, key) -> (CodaConfig field, converter)
_FIELD_MAP = {
    ("microagents", "dir"): ("microagent_dir", str),
    ("microagents", "strict_triggers"): ("strict_triggers", _to_bool),
    ("commands", "dir"): ("commands_dir", str),
    ("storage", "backend"): ("storage", lambda v: str(v).lower()),
    ("storage", "sessions_dir"): ("sessions_dir", str),
    ("rewind", "timeout_seconds"): ("rewind_timeout_seconds", float),
    ("agent", "demo_reply_delay"): ("demo_reply_delay", float),
    ("logging", "level"): ("log_level", lambda v: str(v).upper()),
    ("logging", "dir"): ("log_dir", str),
}


def discover_config_path(working_dir: str | Path) -> Path | None:
    """Return ``<working_dir>/.coda/coda.yaml`` if it exists."""
    candidate = Path(working_dir) / ".coda" / CONFIG_FILENAME
    if candidate.exists():
        return candidate
    return None


def load_yaml_config(
    path: str | Path,
    base: CodaConfig | None = None,
) -> CodaConfig:
    """Load a YAML config file and overlay it on ``base``.

    Raises FileNotFoundError, yaml.YAMLError, or ValueError for values of
    the wrong type.
    """
    path = Path(path)
    base = base if base is not None else CodaConfig()
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    top_sections = sorted(raw.keys())
    logger.info(
        "Parsed YAML config %s — sections: %s",
        path.name, ", ".join(top_sections) if top_sections else "(empty)",
    )

    overrides = {}
    for (section, key), (field_name, convert) in _FIELD_MAP.items():
        section_raw = raw.get(section)
        if not isinstance(section_raw, dict) or key not in section_raw:
            continue
        value = section_raw[key]
        try:
            overrides[field_name] = convert(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"{path}: invalid value for {section}.{key}: {value!r}"
            ) from exc

    config = dataclasses.replace(base, **overrides)
    config.validate()
    return config
