"""Microagent and trigger-expression models."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class TriggerExpression:
    """Boolean condition tree deciding whether a microagent applies.

    A well-formed node populates exactly one of ``contains``, ``and_``,
    ``or_`` or ``not_``. Nodes that populate several are still evaluated
    (see ``coda.engine.triggers.evaluate`` for the precedence); a node
    that populates none never matches.
    """

    contains: str | None = None
    and_: tuple[TriggerExpression, ...] = ()
    or_: tuple[TriggerExpression, ...] = ()
    not_: TriggerExpression | None = None

    def shapes(self) -> list[str]:
        """Names of the populated fields, in evaluation order."""
        found = []
        if self.contains:
            found.append("contains")
        if self.and_:
            found.append("and")
        if self.or_:
            found.append("or")
        if self.not_ is not None:
            found.append("not")
        return found

    @property
    def is_empty(self) -> bool:
        return not self.shapes()


EMPTY_EXPRESSION = TriggerExpression()


def Contains(text: str) -> TriggerExpression:
    return TriggerExpression(contains=text)


def And(*children: TriggerExpression) -> TriggerExpression:
    return TriggerExpression(and_=tuple(children))


def Or(*children: TriggerExpression) -> TriggerExpression:
    return TriggerExpression(or_=tuple(children))


def Not(child: TriggerExpression) -> TriggerExpression:
    return TriggerExpression(not_=child)


@dataclass(frozen=True)
class Frontmatter:
    triggers: TriggerExpression = EMPTY_EXPRESSION


@dataclass(frozen=True)
class Microagent:
    frontmatter: Frontmatter = field(default_factory=Frontmatter)
    content: str = ""
    source_path: Path | None = None

    @property
    def name(self) -> str:
        if self.source_path is None:
            return "<inline>"
        return self.source_path.stem

    @property
    def triggers(self) -> TriggerExpression:
        return self.frontmatter.triggers
