"""Trigger expression evaluation and parsing.

Metadata grammar (YAML, under the ``triggers`` key):

    triggers:
      and:
        - contains: deploy
        - not:
            contains: staging

Shorthands:
    triggers: deploy            # {contains: deploy}
    triggers: [deploy, ship]    # {or: [{contains: deploy}, {contains: ship}]}

Evaluation follows field precedence: ``contains``, then ``and``, then
``or``, then ``not``. The first populated field decides the result, so a
node that declares both ``contains`` and ``and`` is decided by
``contains`` alone. Empty ``and``/``or`` lists count as unpopulated, which
makes an ``and: []`` node evaluate to false rather than vacuously true.
"""
from __future__ import annotations

import logging
from typing import Any

from coda.shared.models.microagent import EMPTY_EXPRESSION, TriggerExpression

from .errors import TriggerSyntaxError

logger = logging.getLogger(__name__)

_KEYS = ("contains", "and", "or", "not")


def evaluate(prompt: str, expr: TriggerExpression) -> bool:
    """Return whether ``expr`` matches ``prompt``. Never raises."""
    if expr.contains:
        return expr.contains in prompt
    if expr.and_:
        return all(evaluate(prompt, child) for child in expr.and_)
    if expr.or_:
        return any(evaluate(prompt, child) for child in expr.or_)
    if expr.not_ is not None:
        return not evaluate(prompt, expr.not_)
    return False


def parse_trigger_expression(
    raw: Any,
    *,
    strict: bool = False,
    location: str = "triggers",
) -> TriggerExpression:
    """Build a TriggerExpression from a decoded YAML value.

    Raises TriggerSyntaxError on wrong value types or unknown keys. With
    ``strict`` set, a node populating more than one shape is rejected
    instead of being evaluated by precedence.
    """
    if raw is None:
        return EMPTY_EXPRESSION
    if isinstance(raw, str):
        return TriggerExpression(contains=raw)
    if isinstance(raw, list):
        children = tuple(
            parse_trigger_expression(item, strict=strict, location=f"{location}[{i}]")
            for i, item in enumerate(raw)
        )
        return TriggerExpression(or_=children)
    if not isinstance(raw, dict):
        raise TriggerSyntaxError(
            f"expected a mapping, list or string, got {type(raw).__name__}",
            location,
        )

    unknown = sorted(str(k) for k in raw if k not in _KEYS)
    if unknown:
        raise TriggerSyntaxError(
            f"unknown key(s): {', '.join(unknown)}", location,
        )

    contains = raw.get("contains")
    if contains is not None and not isinstance(contains, str):
        raise TriggerSyntaxError(
            f"'contains' must be a string, got {type(contains).__name__}",
            location,
        )

    and_ = _parse_children(raw, "and", strict=strict, location=location)
    or_ = _parse_children(raw, "or", strict=strict, location=location)

    not_raw = raw.get("not")
    not_ = None
    if not_raw is not None:
        if isinstance(not_raw, list):
            raise TriggerSyntaxError(
                "'not' takes a single expression, not a list", location,
            )
        not_ = parse_trigger_expression(
            not_raw, strict=strict, location=f"{location}.not",
        )

    expr = TriggerExpression(
        contains=contains or None, and_=and_, or_=or_, not_=not_,
    )
    shapes = expr.shapes()
    if len(shapes) > 1:
        if strict:
            raise TriggerSyntaxError(
                f"node declares several shapes ({', '.join(shapes)}); "
                "exactly one is allowed",
                location,
            )
        logger.warning(
            "Trigger node at %s declares %s; only '%s' is evaluated",
            location, ", ".join(shapes), shapes[0],
        )
    return expr


def _parse_children(
    raw: dict, key: str, *, strict: bool, location: str,
) -> tuple[TriggerExpression, ...]:
    value = raw.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise TriggerSyntaxError(
            f"'{key}' must be a list, got {type(value).__name__}", location,
        )
    return tuple(
        parse_trigger_expression(item, strict=strict, location=f"{location}.{key}[{i}]")
        for i, item in enumerate(value)
    )
