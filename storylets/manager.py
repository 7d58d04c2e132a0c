"""
storylets/manager.py -- StoryletManager, the public face of the engine.

Owns the pool registry and tag cache, drives the refresh state machine and
delegates predicate evaluation to a RefreshBackend (inline by default, or an
offload worker thread).  Progress is reported through Qt signals so hosts can
connect UI or game logic without polling.

Usage::

    from storylets import StoryletManager, ScriptedEvaluator

    manager = StoryletManager(evaluator)
    manager.refresh_complete.connect(on_pool_ready)
    manager.add_to_pool("encounters", "side")
    manager.refresh()

    # once per frame / idle callback:
    manager.tick()

    if manager.is_ready("side"):
        storylet_id = manager.pick("side")
"""

from __future__ import annotations

import logging
import random
from typing import Any

from PySide6.QtCore import QObject, Signal

from storylets.config import ManagerSettings
from storylets.discovery import discover, find_group_gate, parse_directives, predicate_id
from storylets.evaluator import PredicateEvaluator
from storylets.models.base import Pool, PoolState, StoryletRecord
from storylets.offload import ChannelBackend, EvaluatorFactory
from storylets.paths import default_save_path
from storylets.persistence import (
    apply_play_state,
    decode_play_state,
    encode_play_state,
    read_play_state_file,
    write_play_state_file,
)
from storylets.registry import PoolRegistry
from storylets.scheduler import (
    DirectBackend,
    RefreshBackend,
    build_refresh_queue,
    evaluate_gates,
)
from storylets.selector import draw, weight_table
from storylets.tags import TagCache

logger = logging.getLogger(__name__)


class StoryletManager(QObject):
    """Selects eligible storylets from named pools.

    Signals
    -------
    refresh_complete(str)
        Fired once per pool each time that pool's refresh completes.
        Payload is the pool name.
    storylets_registered(str, int)
        Fired after ``add_to_pool()``: (pool name, storylets accepted).
    channel_error(str)
        Fired when a refresh backend reports an error: an offload worker
        ERROR, or an inline refresh that failed part-way.
    worker_saved(str)
        Fired with the worker's play-state after ``request_worker_save()``.

    Parameters
    ----------
    evaluator : PredicateEvaluator
        The live narrative state.  Only the thread that owns the manager
        mutates it.
    settings : ManagerSettings, optional
        Naming conventions and tick budget.
    backend : RefreshBackend, optional
        Defaults to an inline :class:`DirectBackend`.
    rng : random.Random, optional
        Source for ``pick()``; pass a seeded instance for repeatable draws.
    """

    refresh_complete = Signal(str)
    storylets_registered = Signal(str, int)
    channel_error = Signal(str)
    worker_saved = Signal(str)

    def __init__(
        self,
        evaluator: PredicateEvaluator,
        settings: ManagerSettings | None = None,
        backend: RefreshBackend | None = None,
        rng: random.Random | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._evaluator = evaluator
        self._settings = settings or ManagerSettings()
        self._backend = backend or DirectBackend(
            self._settings.storylets_per_tick,
            self._settings.predicate_prefix,
        )
        self._backend.bind(evaluator)
        self._rng = rng or random.Random()
        self._registry = PoolRegistry()
        self._tags = TagCache()

        self._register_from_directives()

    @classmethod
    def offloaded(
        cls,
        evaluator: PredicateEvaluator,
        evaluator_factory: EvaluatorFactory,
        content: Any,
        settings: ManagerSettings | None = None,
        **kwargs,
    ) -> StoryletManager:
        """Build a manager whose predicates are evaluated on a worker thread.

        *evaluator_factory(content)* must build an evaluator equivalent to
        *evaluator* (same functions, its own state).
        """
        settings = settings or ManagerSettings()
        backend = ChannelBackend(
            evaluator_factory,
            content,
            predicate_prefix=settings.predicate_prefix,
            stop_timeout_ms=settings.worker_stop_timeout_ms,
        )
        return cls(evaluator, settings=settings, backend=backend, **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ManagerSettings:
        return self._settings

    @property
    def backend(self) -> RefreshBackend:
        return self._backend

    @property
    def evaluator(self) -> PredicateEvaluator:
        return self._evaluator

    @property
    def pool_names(self) -> list[str]:
        return self._registry.names

    def get_pool(self, pool: str | None = None) -> Pool | None:
        return self._registry.get(self._pool_name(pool))

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    def is_ready(self, pool: str | None = None) -> bool:
        p = self.get_pool(pool)
        return p is not None and p.state is PoolState.REFRESH_COMPLETE

    def is_refreshing(self, pool: str | None = None) -> bool:
        p = self.get_pool(pool)
        return p is not None and p.state is PoolState.REFRESHING

    def needs_refresh(self, pool: str | None = None) -> bool:
        p = self.get_pool(pool)
        return p is None or p.state is PoolState.NEEDS_REFRESH

    def all_ready(self) -> bool:
        """True iff at least one pool exists and every pool has completed a refresh."""
        return self._registry.all_ready()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_to_pool(self, name: str, pool: str | None = None) -> list[str]:
        """Discover storylets named ``<name>_*`` and register them into *pool*.

        Every storylet needs a predicate function ``_<id>``; ids without one
        are logged and skipped.  If a function ``_<name>`` exists it becomes
        the group gate of every storylet registered here.  Tags are read and
        cached once.  Returns the accepted ids.
        """
        s = self._settings
        pool_name = self._pool_name(pool)
        target = self._ensure_pool(pool_name)

        all_ids = list(self._evaluator.all_content_ids())
        known = set(all_ids)
        gate_id = find_group_gate(known, name, s.predicate_prefix)

        accepted: list[StoryletRecord] = []
        for storylet_id in discover(all_ids, name, s.separator):
            fn = predicate_id(storylet_id, s.predicate_prefix)
            if fn not in known:
                logger.error("Can't find predicate function %s for storylet %s.", fn, storylet_id)
                continue

            tags = self._tags.record(storylet_id, self._evaluator.tags_for(storylet_id))
            once = tags.get(s.once_tag.lower()) is True
            accepted.append(target.add(StoryletRecord(
                id=storylet_id,
                discard_after_play=once,
                group_gate_id=gate_id,
            )))

        if accepted:
            self._backend.register(pool_name, accepted)
        ids = [r.id for r in accepted]
        logger.info("Discovered %d storylets for pool '%s' (name='%s'): %s", len(ids), pool_name, name, ids)
        self.storylets_registered.emit(pool_name, len(ids))
        return ids

    def _register_from_directives(self) -> None:
        s = self._settings
        for directive in parse_directives(self._evaluator.global_directives(), s.default_pool, s.directive_prefix):
            self.add_to_pool(directive.name, directive.pool)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, pool: str | None = None) -> None:
        """Start a refresh of *pool*, or of every registered pool.

        Group gates are evaluated here, synchronously, so that host-bound
        functions are reachable.  Predicates are evaluated later by
        ``tick()``.  Refreshing a named pool that is already refreshing does
        nothing; refreshing all pools restarts any that are in flight.
        """
        if pool is not None:
            target = self._ensure_pool(pool)
            if target.state is PoolState.REFRESHING:
                logger.debug("Pool '%s' is already refreshing; ignoring refresh()", pool)
                return
            targets = [target]
        else:
            targets = list(self._registry)
            if not targets:
                logger.warning("refresh() called with no pools registered")
                return

        gate_results = evaluate_gates(self._evaluator, targets)
        for target in targets:
            target.begin_refresh(build_refresh_queue(target, gate_results))
        self._backend.start_refresh(pool, targets, gate_results)

    def tick(self) -> list[str]:
        """Advance in-flight refreshes.  Returns the pools completed by this call."""
        result = self._backend.tick(self._registry)
        for message in result.errors:
            logger.error("Refresh backend error: %s", message)
            self.channel_error.emit(message)
        for payload in result.saved:
            self.worker_saved.emit(payload)
        for pool_name in result.completed:
            self.refresh_complete.emit(pool_name)
        return result.completed

    # ------------------------------------------------------------------
    # Query and selection
    # ------------------------------------------------------------------

    def get_playable(self, pool: str | None = None, weighted: bool = False) -> list[str] | None:
        """Playable ids of *pool*, or None if its refresh is not complete.

        With ``weighted=True`` ids appear once per unit of weight.
        """
        p = self._ready_pool(pool, "get_playable")
        if p is None:
            return None
        return list(p.weighted_hand if weighted else p.hand)

    def get_weights(self, pool: str | None = None) -> dict[str, int] | None:
        p = self._ready_pool(pool, "get_weights")
        if p is None:
            return None
        return weight_table(p.weighted_hand)

    def pick(self, pool: str | None = None) -> str | None:
        """Draw a random playable storylet, weighted, and mark it played.

        Returns None if the pool is not ready or nothing is playable.
        """
        pool_name = self._pool_name(pool)
        p = self._ready_pool(pool_name, "pick")
        if p is None:
            return None
        storylet_id = draw(p.weighted_hand, self._rng)
        if storylet_id is not None:
            self.mark_played(storylet_id, pool_name)
        return storylet_id

    def mark_played(self, storylet_id: str, pool: str | None = None) -> None:
        """Mark a storylet played in *pool*, or in every pool that holds it."""
        targets = self._registry.targets(pool) if pool is not None else self._registry.pools_holding(storylet_id)
        for p in targets:
            if p.mark_played(storylet_id):
                self._backend.mark_played(p.name, storylet_id)

    # ------------------------------------------------------------------
    # Tag queries
    # ------------------------------------------------------------------

    def get_tag(self, storylet_id: str, key: str, default: Any = None) -> Any:
        """Cached tag value (case-insensitive key), or *default*."""
        return self._tags.get(storylet_id, key, default)

    def get_eligible_with_tag(self, key: str, value: Any, pool: str | None = None) -> list[str]:
        """Playable ids whose tag *key* equals *value*.

        Searches the named pool, or every pool when *pool* is None.  Pools
        that are not ready contribute nothing.
        """
        found = []
        for p in self._registry.targets(pool):
            if p.state is not PoolState.REFRESH_COMPLETE:
                continue
            found.extend(sid for sid in p.hand if self._tags.matches(sid, key, value))
        return found

    def get_first_eligible_with_tag(self, key: str, value: Any, pool: str | None = None) -> str | None:
        matches = self.get_eligible_with_tag(key, value, pool)
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Reset and persistence
    # ------------------------------------------------------------------

    def reset(self, pool: str | None = None) -> None:
        """Forget played flags and any in-flight refresh for *pool* or all pools.

        World state held by the evaluator is not touched.
        """
        for p in self._registry.targets(pool):
            p.reset()
        self._backend.reset(pool)

    def save(self) -> str:
        """Play-state of every pool as JSON: ``{pool: [[id, played], ...]}``."""
        return encode_play_state(self._registry)

    def load(self, blob: str) -> int:
        """Restore play-state from ``save()`` output.

        The blob is validated first (PlayStateError if malformed), then all
        pools are reset and flags applied to ids that still exist.  Call
        ``refresh()`` afterwards.  Returns the number of ids restored.
        """
        data = decode_play_state(blob)
        self.reset()
        applied = apply_play_state(self._registry, data)
        self._backend.load(blob)
        return applied

    def save_to_file(self, path=None) -> str:
        """Atomically write ``save()`` to *path* (default: user data dir)."""
        path = str(path or default_save_path())
        write_play_state_file(path, self.save())
        logger.info("Saved storylet play-state to %s", path)
        return path

    def load_from_file(self, path=None) -> bool:
        """Load play-state written by ``save_to_file()``.  False if no save exists."""
        path = str(path or default_save_path())
        blob = read_play_state_file(path)
        if blob is None:
            logger.info("No storylet play-state at %s", path)
            return False
        self.load(blob)
        return True

    def request_worker_save(self) -> bool:
        """Ask the offload worker for its mirror of play-state.

        The answer arrives through ``worker_saved`` on a later ``tick()``.
        Returns False when there is no worker.
        """
        if not isinstance(self._backend, ChannelBackend):
            return False
        self._backend.request_save()
        return True

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Stop the offload worker, if any.  Safe to call more than once.

        An offloaded manager that is dropped without this call still stops
        its worker when the backend is garbage collected.
        """
        self._backend.shutdown()

    def __enter__(self) -> StoryletManager:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _pool_name(self, pool: str | None) -> str:
        return self._settings.default_pool if pool is None else pool

    def _ensure_pool(self, name: str) -> Pool:
        pool, created = self._registry.get_or_create(name)
        if created:
            self._backend.register(name, [])
        return pool

    def _ready_pool(self, pool: str | None, caller: str) -> Pool | None:
        name = self._pool_name(pool)
        p = self._registry.get(name)
        if p is None or p.state is not PoolState.REFRESH_COMPLETE:
            logger.warning("Don't call %s() until refresh is complete for pool '%s'!", caller, name)
            return None
        return p
