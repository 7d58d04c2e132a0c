"""
storylets/discovery.py -- Naming-convention discovery, as pure functions.

Storylets are found by name: registering the group ``encounters`` picks up
every content id beginning with ``encounters_``.  Each storylet must have a
predicate function named ``_<id>``; the group may optionally have a gate
function named ``_encounters``.

These helpers take the full id list as an argument instead of asking the
evaluator, so they can be tested without one.
"""

from __future__ import annotations

import logging
from typing import Iterable, NamedTuple, Sequence

logger = logging.getLogger(__name__)


class Directive(NamedTuple):
    name: str
    pool: str


def discover(all_ids: Iterable[str], name: str, separator: str = "_") -> list[str]:
    """Return the ids that belong to group *name*, in content order."""
    prefix = name + separator
    return [content_id for content_id in all_ids if content_id.startswith(prefix)]


def predicate_id(content_id: str, predicate_prefix: str = "_") -> str:
    return predicate_prefix + content_id


def find_group_gate(all_ids: Iterable[str], name: str, predicate_prefix: str = "_") -> str | None:
    """Return the gate function id for group *name* if the content defines one."""
    gate_id = predicate_prefix + name
    return gate_id if gate_id in set(all_ids) else None


def parse_directives(
    directives: Sequence[str] | None,
    default_pool: str,
    directive_prefix: str = "register:",
) -> list[Directive]:
    """Parse ``register:<name>[,<pool>]`` global directives.

    Directives with another prefix are ignored; a directive with an empty
    name is logged and skipped.  A missing or blank pool falls back to
    *default_pool*.
    """
    found: list[Directive] = []
    for raw in directives or ():
        directive = raw.strip()
        if not directive.startswith(directive_prefix):
            continue
        name, _, pool = directive[len(directive_prefix):].partition(",")
        name, pool = name.strip(), pool.strip()
        if not name:
            logger.warning("Ignoring directive with no group name: %r", raw)
            continue
        found.append(Directive(name, pool or default_pool))
    return found
