"""
storylets/scripted.py -- In-memory predicate evaluator.

A small, dependency-free implementation of the PredicateEvaluator contract
for hosts that express their predicates as Python callables rather than in a
compiled narrative script.  World state is a JSON-serialisable dict of
variables; each predicate is called with that dict.

The compiled :class:`ScriptContent` is immutable and can be handed to an
offload worker, which builds its own evaluator from it (its own variables,
seeded from the state token of each refresh).

Usage::

    content = ScriptContent(
        functions={
            "_encounters": lambda v: v["location"] == "forest",
            "_encounters_wolf": lambda v: 3 if v["night"] else 1,
        },
        knots={"encounters_wolf": ["once", "loc: forest"]},
        directives=["register:encounters"],
        initial_state={"location": "forest", "night": False},
    )
    evaluator = ScriptedEvaluator(content)
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from storylets.errors import MissingFunctionError

Predicate = Callable[[dict], Any]


@dataclass(frozen=True)
class ScriptContent:
    """Compiled content: predicate functions, tagged content units, directives."""
    functions: Mapping[str, Predicate] = field(default_factory=dict)
    knots: Mapping[str, Sequence[str]] = field(default_factory=dict)
    directives: Sequence[str] = ()
    initial_state: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "functions", MappingProxyType(dict(self.functions)))
        object.__setattr__(
            self, "knots",
            MappingProxyType({k: tuple(v) for k, v in self.knots.items()}),
        )
        object.__setattr__(self, "directives", tuple(self.directives))


class ScriptedEvaluator:
    """PredicateEvaluator over a :class:`ScriptContent`."""

    def __init__(self, content: ScriptContent):
        self.content = content
        self.variables: dict[str, Any] = copy.deepcopy(dict(content.initial_state))

    def evaluate(self, function_id: str) -> Any:
        fn = self.content.functions.get(function_id)
        if fn is None:
            raise MissingFunctionError(function_id)
        return fn(self.variables)

    def tags_for(self, content_id: str) -> list[str] | None:
        tags = self.content.knots.get(content_id)
        return None if tags is None else list(tags)

    def all_content_ids(self) -> list[str]:
        ids = list(self.content.knots)
        ids.extend(fn for fn in self.content.functions if fn not in self.content.knots)
        return ids

    def global_directives(self) -> list[str]:
        return list(self.content.directives)

    def serialize_state(self) -> str:
        return json.dumps(self.variables, sort_keys=True)

    def load_state(self, token: str) -> None:
        self.variables = json.loads(token)

    # Convenience for hosts mutating the world between refreshes
    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)
