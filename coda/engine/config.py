"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CODA_* env vars, or
with a YAML file (see ``coda.engine.yaml_config``).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("json", "memory")


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in {"1", "true", "yes"}


@dataclass
class CodaConfig:
    """Client configuration."""

    # Project whose .coda/ directory holds microagents and commands.
    working_dir: str = "."
    # Relative paths are resolved against working_dir.
    microagent_dir: str = ".coda/microagents"
    commands_dir: str = ".coda/commands"
    # Reject trigger nodes that populate more than one shape.
    strict_triggers: bool = False

    # Session storage: "json" (one file per session) or "memory".
    storage: str = "json"
    sessions_dir: str = "~/.coda/sessions"

    # Bound on the delete + re-fetch calls of a rewind.
    # Set to 0 (or a negative value) to disable the timeout.
    rewind_timeout_seconds: float = 30.0

    # Simulated latency of the demo agent's reply.
    demo_reply_delay: float = 0.2

    # Logging
    log_level: str = "INFO"
    log_dir: str = "~/.coda/logs"

    def resolve_working_dir(self) -> Path:
        return Path(self.working_dir).expanduser().resolve()

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        if path.is_absolute():
            return path
        return self.resolve_working_dir() / path

    def resolve_microagent_dir(self) -> Path:
        return self._resolve(self.microagent_dir)

    def resolve_commands_dir(self) -> Path:
        return self._resolve(self.commands_dir)

    def resolve_sessions_dir(self) -> Path:
        return Path(self.sessions_dir).expanduser()

    def resolve_log_dir(self) -> Path:
        return Path(self.log_dir).expanduser()

    def validate(self) -> None:
        if self.storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend '{self.storage}' "
                f"(expected one of: {', '.join(STORAGE_BACKENDS)})"
            )

    @classmethod
    def from_env(cls) -> CodaConfig:
        """Load configuration from CODA_* environment variables."""
        coda_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CODA_")
        }
        if coda_vars:
            logger.info(
                "CodaConfig.from_env: CODA_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(coda_vars.items())),
            )
        else:
            logger.debug("CodaConfig.from_env: no CODA_* env vars set, using defaults")

        config = cls(
            working_dir=os.getenv("CODA_WORKING_DIR", cls.working_dir),
            microagent_dir=os.getenv(
                "CODA_MICROAGENT_DIR", cls.microagent_dir
            ),
            commands_dir=os.getenv("CODA_COMMANDS_DIR", cls.commands_dir),
            strict_triggers=_env_flag("CODA_STRICT_TRIGGERS"),
            storage=os.getenv("CODA_STORAGE", cls.storage).lower(),
            sessions_dir=os.getenv("CODA_SESSIONS_DIR", cls.sessions_dir),
            rewind_timeout_seconds=float(os.getenv(
                "CODA_REWIND_TIMEOUT", str(cls.rewind_timeout_seconds)
            )),
            demo_reply_delay=float(os.getenv(
                "CODA_DEMO_REPLY_DELAY", str(cls.demo_reply_delay)
            )),
            log_level=os.getenv("CODA_LOG_LEVEL", cls.log_level).upper(),
            log_dir=os.getenv("CODA_LOG_DIR", cls.log_dir),
        )
        config.validate()
        logger.info(
            "CodaConfig.from_env: working_dir=%s storage=%s log_level=%s",
            config.working_dir, config.storage, config.log_level,
        )
        return config
