from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from coda.engine.config import CodaConfig
from coda.engine.yaml_config import discover_config_path, load_yaml_config


def test_config_defaults() -> None:
    cfg = CodaConfig()
    assert cfg.storage == "json"
    assert cfg.strict_triggers is False
    assert cfg.rewind_timeout_seconds == 30.0
    assert cfg.log_level == "INFO"


def test_config_from_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CODA_STORAGE", "Memory")
    monkeypatch.setenv("CODA_STRICT_TRIGGERS", "yes")
    monkeypatch.setenv("CODA_REWIND_TIMEOUT", "2.5")
    monkeypatch.setenv("CODA_LOG_LEVEL", "debug")
    cfg = CodaConfig.from_env()
    assert cfg.storage == "memory"
    assert cfg.strict_triggers is True
    assert cfg.rewind_timeout_seconds == 2.5
    assert cfg.log_level == "DEBUG"


def test_config_from_env_rejects_unknown_storage() -> None:
    old_value = os.environ.get("CODA_STORAGE")
    os.environ["CODA_STORAGE"] = "sqlite"
    try:
        with pytest.raises(ValueError, match="Unknown storage backend"):
            CodaConfig.from_env()
    finally:
        if old_value is None:
            os.environ.pop("CODA_STORAGE", None)
        else:
            os.environ["CODA_STORAGE"] = old_value


def test_relative_dirs_resolve_against_working_dir() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = CodaConfig(working_dir=tmpdir)
        root = Path(tmpdir).resolve()
        assert cfg.resolve_microagent_dir() == root / ".coda" / "microagents"
        assert cfg.resolve_commands_dir() == root / ".coda" / "commands"

        absolute = CodaConfig(working_dir=tmpdir, microagent_dir="/opt/agents")
        assert absolute.resolve_microagent_dir() == Path("/opt/agents")


def test_yaml_config_overlays_base() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "coda.yaml"
        config_path.write_text(
            "microagents:\n"
            "  dir: agents\n"
            "  strict_triggers: true\n"
            "rewind:\n"
            "  timeout_seconds: 15\n"
            "logging:\n"
            "  level: warning\n"
        )
        base = CodaConfig(storage="memory")
        cfg = load_yaml_config(config_path, base=base)
        assert cfg.microagent_dir == "agents"
        assert cfg.strict_triggers is True
        assert cfg.rewind_timeout_seconds == 15.0
        assert cfg.log_level == "WARNING"
        assert cfg.storage == "memory"
        assert base.microagent_dir == ".coda/microagents"


def test_yaml_config_rejects_bad_values() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "coda.yaml"
        config_path.write_text("rewind:\n  timeout_seconds: soon\n")
        with pytest.raises(ValueError, match="rewind.timeout_seconds"):
            load_yaml_config(config_path)

        config_path.write_text("storage:\n  backend: sqlite\n")
        with pytest.raises(ValueError, match="Unknown storage backend"):
            load_yaml_config(config_path)

        config_path.write_text("- not\n- a mapping\n")
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_yaml_config(config_path)


def test_yaml_config_strict_triggers_parses_quoted_flags() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "coda.yaml"
        base = CodaConfig(strict_triggers=True)

        config_path.write_text("microagents:\n  strict_triggers: \"false\"\n")
        assert load_yaml_config(config_path, base=base).strict_triggers is False

        config_path.write_text("microagents:\n  strict_triggers: \"Yes\"\n")
        assert load_yaml_config(config_path).strict_triggers is True

        config_path.write_text("microagents:\n  strict_triggers: maybe\n")
        with pytest.raises(ValueError, match="microagents.strict_triggers"):
            load_yaml_config(config_path)

        config_path.write_text("microagents:\n  strict_triggers: 1\n")
        with pytest.raises(ValueError, match="microagents.strict_triggers"):
            load_yaml_config(config_path)


def test_yaml_config_parse_error_propagates() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "coda.yaml"
        config_path.write_text("rewind: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_config(config_path)


def test_discover_config_path() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        assert discover_config_path(tmpdir) is None
        target = Path(tmpdir) / ".coda" / "coda.yaml"
        target.parent.mkdir()
        target.write_text("{}\n")
        assert discover_config_path(tmpdir) == target
