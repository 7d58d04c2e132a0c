"""
storylets/scheduler.py -- Refresh scheduling.

A refresh is split in two so that a host loop is never blocked:

1. ``StoryletManager.refresh()`` evaluates every distinct group gate once,
   on the calling thread, and builds each pool's pending queue from the
   storylets whose gate is active (:func:`evaluate_gates`,
   :func:`build_refresh_queue`).
2. A :class:`RefreshBackend` turns pending queues into hands.  The
   :class:`DirectBackend` does this inline, a few predicates per ``tick()``;
   the channel backend in :mod:`storylets.offload` ships the work to a worker
   thread and collects the answers on ``tick()``.

The manager only talks to the backend interface, so both execution modes
share the same state machine, signals and persistence.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

from storylets.discovery import predicate_id
from storylets.evaluator import PredicateEvaluator, evaluate_gate, evaluate_weight
from storylets.models.base import Pool, StoryletRecord
from storylets.registry import PoolRegistry

logger = logging.getLogger(__name__)


def evaluate_gates(evaluator: PredicateEvaluator, pools: Iterable[Pool]) -> dict[str, bool]:
    """Evaluate each distinct group gate referenced by *pools* exactly once."""
    results: dict[str, bool] = {}
    for pool in pools:
        for gate_id in pool.gate_ids():
            if gate_id not in results:
                results[gate_id] = evaluate_gate(evaluator, gate_id)
    return results


def build_refresh_queue(pool: Pool, gate_results: dict[str, bool]) -> list[StoryletRecord]:
    """Deck records whose group gate (if any) is active this refresh."""
    queue = []
    for record in pool.deck.values():
        gate = record.group_gate_id
        if gate is not None and not gate_results.get(gate, True):
            continue
        queue.append(record)
    return queue


def weigh(evaluator: PredicateEvaluator, record: StoryletRecord, predicate_prefix: str = "_") -> int:
    """Weight of one storylet; exhausted once-only storylets skip evaluation."""
    if record.exhausted:
        return 0
    return evaluate_weight(evaluator, predicate_id(record.id, predicate_prefix))


@dataclass
class TickResult:
    """What happened during one ``tick()``."""
    completed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    saved: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.completed or self.errors or self.saved)


class RefreshBackend(ABC):
    """Where predicate evaluation for a refresh actually happens."""

    def bind(self, evaluator: PredicateEvaluator) -> None:
        """Called once by the manager with its live evaluator."""

    def register(self, pool: str, records: list[StoryletRecord]) -> None:
        """A pool was created or storylets were (re-)registered into it."""

    @abstractmethod
    def start_refresh(self, pool: str | None, targets: list[Pool], gate_results: dict[str, bool]) -> None:
        """Called after *targets* have been moved to REFRESHING."""

    @abstractmethod
    def tick(self, registry: PoolRegistry) -> TickResult:
        """Advance in-flight refreshes and report completions."""

    def mark_played(self, pool: str, storylet_id: str) -> None:
        pass

    def reset(self, pool: str | None) -> None:
        pass

    def load(self, payload: str) -> None:
        pass

    def shutdown(self) -> None:
        pass


class DirectBackend(RefreshBackend):
    """Cooperative, single-threaded backend.

    Each ``tick()`` evaluates at most ``storylets_per_tick`` predicates per
    refreshing pool, so a deck of ``D`` storylets completes after
    ``ceil(D / storylets_per_tick)`` ticks (one tick for an empty queue).

    Predicates are evaluated against the live evaluator passed to
    ``bind()``, so they always see the current world state.

    Parameters
    ----------
    storylets_per_tick : int
        The tick budget.
    predicate_prefix : str
        Prefix that turns a storylet id into its predicate function id.
    """

    def __init__(self, storylets_per_tick: int = 5, predicate_prefix: str = "_"):
        if storylets_per_tick < 1:
            raise ValueError("storylets_per_tick must be at least 1")
        self._evaluator: PredicateEvaluator | None = None
        self.storylets_per_tick = storylets_per_tick
        self._predicate_prefix = predicate_prefix

    def bind(self, evaluator: PredicateEvaluator) -> None:
        self._evaluator = evaluator

    def start_refresh(self, pool, targets, gate_results) -> None:
        # Queues were already built by the manager; tick() drains them.
        pass

    def tick(self, registry: PoolRegistry) -> TickResult:
        result = TickResult()
        for pool in registry.refreshing():
            try:
                self._drain(pool)
            except Exception as e:
                logger.exception("Refresh of pool '%s' failed; completing with nothing playable", pool.name)
                pool.complete([], [])
                result.errors.append(f"Refresh of pool '{pool.name}' failed: {str(e) or type(e).__name__}")
                result.completed.append(pool.name)
                continue

            if not pool.pending_queue:
                pool.complete()
                result.completed.append(pool.name)
                logger.debug("Pool '%s' refresh complete: %d playable", pool.name, len(pool.hand))
            else:
                logger.debug("Pool '%s': %d storylets left to evaluate", pool.name, len(pool.pending_queue))
        return result

    def _drain(self, pool: Pool) -> None:
        for _ in range(min(self.storylets_per_tick, len(pool.pending_queue))):
            record = pool.pending_queue.popleft()
            pool.accept(record.id, weigh(self._evaluator, record, self._predicate_prefix))
