"""Slash command parser, built-in help table and custom command files.

Custom commands are markdown files under ``.coda/commands``. The file
stem is the command name; ``$NAME`` placeholders in the body are filled
from ``KEY=VALUE`` arguments:

    /run review FILE=src/app.py
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$([A-Z][A-Z0-9_]*)")


@dataclass
class ParsedCommand:
    """A parsed slash command."""

    name: str
    args: list[str]
    raw: str


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a /command from input text.

    Returns None if text does not start with '/'.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped.split()
    name = parts[0][1:]  # remove leading '/'
    args = parts[1:] if len(parts) > 1 else []
    return ParsedCommand(name=name, args=args, raw=stripped)


COMMAND_HELP: dict[str, str] = {
    "new": "Start a fresh session",
    "rewind": "Pick an earlier prompt and drop it and everything after it (also Ctrl+R)",
    "sessions": "List saved sessions",
    "microagents": "List loaded microagents and their triggers",
    "run": "Run a custom command from .coda/commands: /run NAME [KEY=VALUE ...]",
    "help": "Show this help message",
}


@dataclass
class CustomCommand:
    name: str
    content: str
    source_path: Path | None = None
    arg_names: list[str] = field(default_factory=list)


def find_placeholders(content: str) -> list[str]:
    """Distinct ``$NAME`` placeholders in order of first appearance."""
    seen: list[str] = []
    for match in _PLACEHOLDER.finditer(content):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def substitute_args(content: str, args: dict[str, str] | None) -> str:
    """Replace every ``$NAME`` placeholder with its value.

    Longer names are replaced first so ``$FILE_PATH`` is not cut short
    by a ``$FILE`` argument. Placeholders without a value stay as-is.
    """
    if not args:
        return content
    for name in sorted(args, key=len, reverse=True):
        content = content.replace(f"${name}", args[name])
    return content


def parse_command_args(tokens: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` tokens into a dict. Raises ValueError otherwise."""
    args: dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{token}'")
        args[key] = value
    return args


def load_custom_commands(directory: str | Path) -> dict[str, CustomCommand]:
    """Load ``*.md`` custom commands keyed by name.

    A missing directory yields no commands. Unreadable files are skipped
    with a warning; commands are convenience, not configuration.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return {}
    commands: dict[str, CustomCommand] = {}
    for path in sorted(directory.rglob("*.md")):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping custom command %s: %s", path, exc)
            continue
        name = path.relative_to(directory).with_suffix("").as_posix().replace("/", ":")
        commands[name] = CustomCommand(
            name=name,
            content=content,
            source_path=path,
            arg_names=find_placeholders(content),
        )
    logger.info("Loaded %d custom command(s) from %s", len(commands), directory)
    return commands
