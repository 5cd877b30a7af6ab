"""coda main application entry point."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def _configure_logging(config, *, to_stderr: bool) -> Path:
    """Route the root logger to a rotating file (and optionally stderr)."""
    log_dir = config.resolve_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "coda.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level, logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if to_stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
    return log_file


def _load_config(args):
    from coda.engine.config import CodaConfig
    from coda.engine.yaml_config import discover_config_path, load_yaml_config

    config = CodaConfig.from_env()
    if args.cwd:
        config.working_dir = args.cwd
    config_path = args.config or discover_config_path(config.resolve_working_dir())
    if config_path:
        config = load_yaml_config(config_path, base=config)
        logging.getLogger(__name__).info("Using config file: %s", config_path)
    return config


def _list_sessions(store) -> None:
    sessions = store.list()
    if not sessions:
        print("No saved sessions.")
        return
    for s in sessions:
        print(f"  {s.id}  {s.title} ({s.stats.message_count} messages)")


def _print_matches(registry, prompt: str) -> None:
    matched = registry.find(prompt)
    if not matched:
        print(f"No microagents match (loaded: {len(registry)}).")
        return
    for agent in matched:
        print(f"  {agent.name}  {agent.source_path}")


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="coda",
        description="coda — terminal chat client for a coding agent",
    )
    parser.add_argument(
        "--new", action="store_true",
        help="Start with no session selected (default)",
    )
    parser.add_argument(
        "--resume", metavar="SESSION_ID",
        help="Resume a saved session by id",
    )
    parser.add_argument(
        "--list", action="store_true",
        help="List saved sessions and exit (no TUI)",
    )
    parser.add_argument(
        "--match", metavar="PROMPT",
        help="Print the microagents a prompt would activate and exit",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (default: .coda/coda.yaml if present)",
    )
    parser.add_argument(
        "--cwd", metavar="DIR",
        help="Project directory holding .coda/ (default: current directory)",
    )
    args = parser.parse_args()

    from coda.engine.errors import CodaError, SessionNotFoundError
    from coda.engine.microagents import MicroagentRegistry
    from coda.shared.services.persistence import build_store

    try:
        config = _load_config(args)
    except (OSError, ValueError) as exc:
        print(f"Error: cannot load config: {exc}", file=sys.stderr)
        sys.exit(2)

    headless = bool(args.list or args.match is not None)
    log_file = _configure_logging(config, to_stderr=headless and config.log_level == "DEBUG")
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting coda cwd=%s storage=%s log=%s pid=%d",
        config.resolve_working_dir(), config.storage, log_file, os.getpid(),
    )

    store = build_store(config)
    if args.list:
        _list_sessions(store)
        sys.exit(0)

    try:
        registry = MicroagentRegistry.for_config(config)
    except CodaError as exc:
        logger.error("Microagent load failed: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.match is not None:
        _print_matches(registry, args.match)
        sys.exit(0)

    resume_id = None if args.new else args.resume
    if resume_id:
        try:
            store.get(resume_id)
        except SessionNotFoundError:
            print(f"Error: session '{resume_id}' not found", file=sys.stderr)
            sys.exit(1)

    from coda.adapters.event_bus import EventBus
    from coda.engine.conversation import ConversationController
    from coda.shared.commands import load_custom_commands
    from coda.tui.app import CodaApp

    bus = EventBus()
    controller = ConversationController.from_config(
        config, store, bus=bus, registry=registry,
    )
    app = CodaApp(
        controller,
        bus,
        custom_commands=load_custom_commands(config.resolve_commands_dir()),
        resume_session_id=resume_id,
    )
    app.run()


if __name__ == "__main__":
    main()
