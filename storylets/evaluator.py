"""
storylets/evaluator.py -- Predicate Evaluator contract and result mapping.

The narrative scripting engine is an external collaborator.  All the refresh
engine needs from it is captured by :class:`PredicateEvaluator`.  Predicates
are duck-typed (a function may return a bool, a number, or something else),
so every raw return value is first wrapped in an :class:`EvalResult` and then
resolved by one total mapping:

    ======== ==============================  ======================
    kind     storylet weight                 group gate
    ======== ==============================  ======================
    BOOL     1 if True else 0                the bool
    NUMBER   floor(value), clamped at 0      value > 0
    INVALID  0                               inactive
    ======== ==============================  ======================

A numeric weight above :data:`MAX_WEIGHT` is treated like INVALID for
weighting (weight 0, logged); the weighted hand repeats an id once per unit
of weight, so the cap bounds its size.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol, Sequence, runtime_checkable

from storylets.errors import MissingFunctionError

logger = logging.getLogger(__name__)

MAX_WEIGHT = 1000


@runtime_checkable
class PredicateEvaluator(Protocol):
    """What the engine consumes from the narrative scripting engine."""

    def evaluate(self, function_id: str) -> Any:
        """Run a predicate function.  Raises MissingFunctionError if unknown."""

    def tags_for(self, content_id: str) -> Sequence[str] | None:
        """Raw tag strings attached to a content unit, or None."""

    def all_content_ids(self) -> Sequence[str]:
        """Every named content unit (storylets and functions alike)."""

    def global_directives(self) -> Sequence[str]:
        """Story-level tags, e.g. ``register:encounters,side``."""

    def serialize_state(self) -> str:
        """Snapshot the mutable world state as an opaque token."""

    def load_state(self, token: str) -> None:
        """Replace the mutable world state with a snapshot."""


class ResultKind(Enum):
    BOOL = auto()
    NUMBER = auto()
    INVALID = auto()


@dataclass(frozen=True)
class EvalResult:
    """A predicate return value tagged with how it should be read."""
    kind: ResultKind
    value: Any = None

    @classmethod
    def from_value(cls, value: Any) -> EvalResult:
        # bool is a numbers.Integral, so it has to be checked first
        if isinstance(value, bool):
            return cls(ResultKind.BOOL, value)
        if isinstance(value, numbers.Real):
            if not math.isfinite(value):
                return cls(ResultKind.INVALID, value)
            return cls(ResultKind.NUMBER, value)
        return cls(ResultKind.INVALID, value)

    def to_weight(self) -> int:
        if self.kind is ResultKind.BOOL:
            return 1 if self.value else 0
        if self.kind is ResultKind.NUMBER:
            if self.value > MAX_WEIGHT:
                return 0
            return max(0, math.floor(self.value))
        return 0

    def to_gate(self) -> bool:
        if self.kind is ResultKind.BOOL:
            return bool(self.value)
        if self.kind is ResultKind.NUMBER:
            return self.value > 0
        return False


def evaluate_weight(evaluator: PredicateEvaluator, function_id: str) -> int:
    """Evaluate a storylet predicate and resolve it to a weight.

    Never raises: a missing function, an exception inside the predicate, an
    unsupported return type or a weight above MAX_WEIGHT all yield 0 and are
    logged.
    """
    try:
        raw = evaluator.evaluate(function_id)
    except Exception:
        logger.warning("Predicate %s failed; treating as weight 0", function_id, exc_info=True)
        return 0

    result = EvalResult.from_value(raw)
    if result.kind is ResultKind.INVALID:
        logger.warning(
            "Predicate %s returned %r - should be bool or number; treating as weight 0",
            function_id, raw,
        )
    elif result.kind is ResultKind.NUMBER and raw > MAX_WEIGHT:
        logger.warning(
            "Predicate %s returned %r - above the weight cap of %d; treating as weight 0",
            function_id, raw, MAX_WEIGHT,
        )
    return result.to_weight()


def evaluate_gate(evaluator: PredicateEvaluator, gate_id: str) -> bool:
    """Evaluate a group gate.

    A gate whose function does not exist is active (fail-open).  Any other
    failure, or a return value that is neither bool nor number, makes the
    gate inactive for this refresh only.
    """
    try:
        raw = evaluator.evaluate(gate_id)
    except MissingFunctionError:
        logger.info("Group gate %s not found; group treated as active", gate_id)
        return True
    except Exception:
        logger.warning("Group gate %s failed; group treated as inactive", gate_id, exc_info=True)
        return False

    result = EvalResult.from_value(raw)
    if result.kind is ResultKind.INVALID:
        logger.warning("Group gate %s returned %r; group treated as inactive", gate_id, raw)
    return result.to_gate()
