"""coda engine: microagent triggers and registry, session rewind."""
from .config import CodaConfig
from .errors import (
    AgentBusyError,
    CodaError,
    MessageNotFoundError,
    MicroagentLoadError,
    RewindError,
    RewindInProgressError,
    SessionNotFoundError,
    TriggerSyntaxError,
)
from .triggers import evaluate, parse_trigger_expression

__all__ = [
    # Config
    "CodaConfig",
    "load_yaml_config",
    # Triggers
    "evaluate",
    "parse_trigger_expression",
    # Registry and rewind (lazy import; they depend on the stores)
    "MicroagentRegistry",
    "SessionRewindCoordinator",
    "ConversationController",
    # Errors
    "AgentBusyError",
    "CodaError",
    "MessageNotFoundError",
    "MicroagentLoadError",
    "RewindError",
    "RewindInProgressError",
    "SessionNotFoundError",
    "TriggerSyntaxError",
]


def __getattr__(name: str):
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    if name == "MicroagentRegistry":
        from .microagents import MicroagentRegistry
        return MicroagentRegistry
    if name == "SessionRewindCoordinator":
        from .rewind import SessionRewindCoordinator
        return SessionRewindCoordinator
    if name == "ConversationController":
        from .conversation import ConversationController
        return ConversationController
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
