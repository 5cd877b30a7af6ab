"""Microagent registry.

Microagents are markdown files under ``.coda/microagents`` (recursive).
A file may open with a YAML metadata block between two ``---`` lines:

    ---
    triggers:
      or:
        - contains: deploy
        - contains: release
    ---
    Always run the smoke tests before deploying.

Files without such a block are kept with an empty trigger expression and
never match. The registry is built once and never mutated; to pick up
changed files, build a new one.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from coda.shared.models.microagent import Frontmatter, Microagent

from .errors import MicroagentLoadError, TriggerSyntaxError
from .triggers import evaluate, parse_trigger_expression

if TYPE_CHECKING:
    from .config import CodaConfig

logger = logging.getLogger(__name__)

MICROAGENT_DIR = Path(".coda") / "microagents"
DELIMITER = "---"


def split_frontmatter(text: str) -> tuple[str, str] | None:
    """Split ``text`` into (metadata, body) on its leading ``---`` block.

    The first delimiter must be the first non-blank line. Returns None
    when the file has no complete metadata block.
    """
    lines = text.splitlines(keepends=True)
    opening = None
    for i, line in enumerate(lines):
        if not line.strip():
            continue
        if line.rstrip() == DELIMITER:
            opening = i
        break
    if opening is None:
        return None

    for j in range(opening + 1, len(lines)):
        if lines[j].rstrip() == DELIMITER:
            return "".join(lines[opening + 1:j]), "".join(lines[j + 1:])
    return None


def parse_microagent(
    text: str,
    source_path: Path | None = None,
    *,
    strict: bool = False,
) -> Microagent:
    """Parse one microagent file's content.

    Raises MicroagentLoadError when the metadata block is present but
    cannot be parsed.
    """
    location = str(source_path) if source_path else "<inline>"
    parts = split_frontmatter(text)
    if parts is None:
        return Microagent(content=text, source_path=source_path)

    meta_text, body = parts
    try:
        meta = yaml.safe_load(meta_text)
    except yaml.YAMLError as exc:
        raise MicroagentLoadError(location, f"YAML parse error: {exc}") from exc

    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise MicroagentLoadError(
            location,
            f"metadata must be a mapping, got {type(meta).__name__}",
        )

    try:
        triggers = parse_trigger_expression(meta.get("triggers"), strict=strict)
    except TriggerSyntaxError as exc:
        raise MicroagentLoadError(location, str(exc)) from exc

    return Microagent(
        frontmatter=Frontmatter(triggers=triggers),
        content=body,
        source_path=source_path,
    )


class MicroagentRegistry:
    """Immutable snapshot of the microagents found at load time.

    Safe to share between threads; ``find`` only reads.
    """

    def __init__(self, microagents: tuple[Microagent, ...] | list[Microagent] = ()) -> None:
        self._microagents: tuple[Microagent, ...] = tuple(microagents)

    @classmethod
    def load(cls, directory: str | Path, *, strict: bool = False) -> MicroagentRegistry:
        """Scan ``directory`` recursively for ``*.md`` microagents.

        A missing directory gives an empty registry. Any unreadable or
        unparsable file aborts the whole load with MicroagentLoadError.
        """
        directory = Path(directory)
        if not directory.exists():
            logger.info("No microagent directory at %s", directory)
            return cls()
        if not directory.is_dir():
            raise MicroagentLoadError(directory, "not a directory")

        agents: list[Microagent] = []
        for path in sorted(directory.rglob("*.md")):
            if not path.is_file():
                continue
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise MicroagentLoadError(path, str(exc)) from exc
            agent = parse_microagent(text, path, strict=strict)
            if agent.triggers.is_empty:
                logger.debug("Microagent %s has no triggers; it will never match", path)
            agents.append(agent)

        logger.info("Loaded %d microagent(s) from %s", len(agents), directory)
        return cls(agents)

    @classmethod
    def for_config(cls, config: CodaConfig) -> MicroagentRegistry:
        return cls.load(config.resolve_microagent_dir(), strict=config.strict_triggers)

    def find(self, prompt: str) -> list[Microagent]:
        """Return every microagent whose triggers match, in scan order."""
        return [
            agent for agent in self._microagents
            if evaluate(prompt, agent.triggers)
        ]

    def names(self) -> list[str]:
        return [agent.name for agent in self._microagents]

    def __len__(self) -> int:
        return len(self._microagents)

    def __iter__(self) -> Iterator[Microagent]:
        return iter(self._microagents)


def render_context(matched: list[Microagent]) -> str:
    """Render matched microagents as one context block for the agent."""
    sections = []
    for agent in matched:
        body = agent.content.strip()
        if not body:
            continue
        sections.append(f'<microagent name="{agent.name}">\n{body}\n</microagent>')
    return "\n\n".join(sections)

