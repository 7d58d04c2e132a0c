"""
storylets/offload.py -- Off-thread predicate evaluation.

:class:`OffloadWorker` is a QThread holding a private predicate evaluator and
a private mirror of every pool's deck.  It serves requests from a FIFO inbox
and answers on a FIFO outbox; it never touches the orchestrating thread's
pools.  :class:`ChannelBackend` is the RefreshBackend that drives it: it
forwards registrations and play-state changes, sends one REFRESH per
``refresh()`` call (group gates already evaluated on the orchestrating
thread, sent as overrides) and applies REFRESH_COMPLETE replies on
``tick()``.

Replies are paired with pools by name.  Because the channel is FIFO, the
backend only has to count outstanding REFRESH requests per pool: a reply is
applied only when it is the last one outstanding and the pool is still
REFRESHING, so replies overtaken by a reset or a newer refresh are dropped.

Usage::

    backend = ChannelBackend(ScriptedEvaluator, content)
    manager = StoryletManager(evaluator, backend=backend)
    manager.refresh()
    run_until_ready(manager, timeout=5.0, poll_interval=0.01)
"""

from __future__ import annotations

import logging
import queue
import weakref
from typing import Any, Callable

from PySide6.QtCore import QCoreApplication, QThread

from storylets.errors import ChannelError
from storylets.evaluator import PredicateEvaluator
from storylets.models.base import Pool, PoolState, StoryletRecord
from storylets.models.messages import (
    ErrorResponse,
    InitComplete,
    InitRequest,
    LoadRequest,
    MarkPlayedRequest,
    RefreshComplete,
    RefreshRequest,
    RegisteredStorylet,
    RegisterRequest,
    ResetRequest,
    SaveRequest,
    SaveResult,
    WorkerRequest,
    WorkerResponse,
)
from storylets.persistence import apply_play_state, decode_play_state, encode_play_state
from storylets.registry import PoolRegistry
from storylets.scheduler import RefreshBackend, TickResult, build_refresh_queue, weigh

logger = logging.getLogger(__name__)

EvaluatorFactory = Callable[[Any], PredicateEvaluator]

_STOP = object()


def _stop_worker(worker: OffloadWorker, timeout_ms: int) -> None:
    if not worker.stop(timeout_ms):
        logger.warning("Offload worker did not stop within %d ms", timeout_ms)


class OffloadWorker(QThread):
    """Background context that evaluates storylet predicates.

    Parameters
    ----------
    evaluator_factory : callable
        Builds the worker's private evaluator from INIT content.
    predicate_prefix : str
        Prefix that turns a storylet id into its predicate function id.
    """

    def __init__(self, evaluator_factory: EvaluatorFactory, predicate_prefix: str = "_", parent=None):
        super().__init__(parent)
        self._factory = evaluator_factory
        self._predicate_prefix = predicate_prefix
        self._inbox: queue.Queue = queue.Queue()
        self._outbox: queue.Queue = queue.Queue()

        # Only ever touched from run()
        self._evaluator: PredicateEvaluator | None = None
        self._pools: dict[str, Pool] = {}

    # ------------------------------------------------------------------
    # Orchestrating-thread side
    # ------------------------------------------------------------------

    def post(self, message: WorkerRequest) -> None:
        self._inbox.put(message)

    def poll(self) -> list[WorkerResponse]:
        """Return every response received so far, without blocking."""
        responses = []
        while True:
            try:
                responses.append(self._outbox.get_nowait())
            except queue.Empty:
                return responses

    def wait_response(self, timeout: float | None = None) -> WorkerResponse | None:
        """Block for the next response; None on timeout."""
        try:
            return self._outbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self, timeout_ms: int = 5000) -> bool:
        """Ask the thread to finish and wait for it.  Returns True if it stopped."""
        if not self.isRunning():
            return True
        self._inbox.put(_STOP)
        return self.wait(timeout_ms)

    # ------------------------------------------------------------------
    # Worker-thread side
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Thread entry point -- serve requests until stopped."""
        logger.info("Offload worker started")
        while True:
            message = self._inbox.get()
            if message is _STOP:
                break
            self.handle(message)
        logger.info("Offload worker stopped")

    def handle(self, message: WorkerRequest) -> None:
        """Serve one request; failures become ERROR responses."""
        try:
            if message.type == "INIT":
                self._handle_init(message)
            elif message.type == "REGISTER":
                self._handle_register(message)
            elif message.type == "REFRESH":
                self._handle_refresh(message)
            elif message.type == "MARK_PLAYED":
                self._handle_mark_played(message)
            elif message.type == "RESET":
                self._handle_reset(message)
            elif message.type == "SAVE":
                self._outbox.put(SaveResult(payload=encode_play_state(self._pools.values())))
            elif message.type == "LOAD":
                self._handle_load(message)
            else:
                raise ChannelError(f"Unknown request type: {message.type!r}")
        except Exception as e:
            logger.exception("Offload worker failed to handle %s", getattr(message, "type", message))
            self._outbox.put(ErrorResponse(message=str(e) or type(e).__name__))

    def _pool(self, name: str) -> Pool:
        pool = self._pools.get(name)
        if pool is None:
            pool = self._pools[name] = Pool(name=name)
        return pool

    def _handle_init(self, message: InitRequest) -> None:
        self._evaluator = self._factory(message.content)
        self._outbox.put(InitComplete())

    def _handle_register(self, message: RegisterRequest) -> None:
        pool = self._pool(message.pool)
        for s in message.storylets:
            pool.add(StoryletRecord(
                id=s.id,
                discard_after_play=s.discard_after_play,
                group_gate_id=s.group_gate_id,
            ))

    def _handle_refresh(self, message: RefreshRequest) -> None:
        if message.pool is not None:
            targets = [self._pool(message.pool)]
        else:
            targets = list(self._pools.values())

        if self._evaluator is None:
            self._fail_refresh(targets, "Worker not initialized with evaluator content.")
            return
        try:
            self._evaluator.load_state(message.state_token)
        except Exception as e:
            logger.exception("Offload worker could not load state token")
            self._fail_refresh(targets, f"Could not load state: {e}")
            return

        for pool in targets:
            try:
                self._evaluate_pool(pool, message.gate_overrides)
            except Exception as e:
                # Every targeted pool must get exactly one reply
                logger.exception("Offload worker failed to refresh pool '%s'", pool.name)
                pool.complete([], [])
                self._outbox.put(ErrorResponse(message=str(e) or type(e).__name__, pool=pool.name))
                continue
            self._outbox.put(RefreshComplete(
                pool=pool.name,
                hand=tuple(pool.hand),
                weighted_hand=tuple(pool.weighted_hand),
            ))

    def _evaluate_pool(self, pool: Pool, gate_overrides: dict[str, bool]) -> None:
        pool.begin_refresh(build_refresh_queue(pool, gate_overrides))
        while pool.pending_queue:
            record = pool.pending_queue.popleft()
            pool.accept(record.id, weigh(self._evaluator, record, self._predicate_prefix))
        pool.complete()

    def _fail_refresh(self, targets: list[Pool], reason: str) -> None:
        for pool in targets:
            self._outbox.put(ErrorResponse(message=reason, pool=pool.name))

    def _handle_mark_played(self, message: MarkPlayedRequest) -> None:
        pool = self._pools.get(message.pool)
        if pool is not None:
            pool.mark_played(message.storylet_id)

    def _handle_reset(self, message: ResetRequest) -> None:
        targets = self._pools.values() if message.pool is None else filter(None, [self._pools.get(message.pool)])
        for pool in targets:
            pool.reset()

    def _handle_load(self, message: LoadRequest) -> None:
        apply_play_state(self._pools, decode_play_state(message.payload))


class ChannelBackend(RefreshBackend):
    """RefreshBackend that evaluates predicates on an OffloadWorker.

    Parameters
    ----------
    evaluator_factory : callable
        Builds the worker's private evaluator from *content*.
    content
        Read-only compiled content handed to the worker with INIT.
    predicate_prefix : str
        Prefix that turns a storylet id into its predicate function id.
    stop_timeout_ms : int
        How long ``shutdown()`` waits for the worker thread.
    """

    def __init__(
        self,
        evaluator_factory: EvaluatorFactory,
        content: Any,
        predicate_prefix: str = "_",
        stop_timeout_ms: int = 5000,
    ):
        self._outstanding: dict[str, int] = {}
        self._state_source: PredicateEvaluator | None = None
        self.initialized = False

        self.worker = OffloadWorker(evaluator_factory, predicate_prefix)
        self.worker.post(InitRequest(content=content))
        self.worker.start()

        # Also runs if the backend is collected or the interpreter exits; must
        # not reference self
        self._finalizer = weakref.finalize(self, _stop_worker, self.worker, stop_timeout_ms)
        app = QCoreApplication.instance()
        if app is not None:
            app.aboutToQuit.connect(self._finalizer)

    def bind(self, evaluator: PredicateEvaluator) -> None:
        # The live evaluator is snapshotted at every refresh
        self._state_source = evaluator

    def register(self, pool: str, records: list[StoryletRecord]) -> None:
        self.worker.post(RegisterRequest(
            pool=pool,
            storylets=tuple(
                RegisteredStorylet(
                    id=r.id,
                    discard_after_play=r.discard_after_play,
                    group_gate_id=r.group_gate_id,
                )
                for r in records
            ),
        ))

    def start_refresh(self, pool: str | None, targets: list[Pool], gate_results: dict[str, bool]) -> None:
        if self._state_source is None:
            raise ChannelError("ChannelBackend.bind() must be called before refreshing")
        token = self._state_source.serialize_state()
        self.worker.post(RefreshRequest(pool=pool, state_token=token, gate_overrides=dict(gate_results)))
        for target in targets:
            self._outstanding[target.name] = self._outstanding.get(target.name, 0) + 1

    def tick(self, registry: PoolRegistry) -> TickResult:
        result = TickResult()
        for response in self.worker.poll():
            if response.type == "INIT_COMPLETE":
                self.initialized = True
                logger.info("Offload worker initialized")
            elif response.type == "REFRESH_COMPLETE":
                if self._settle(registry, response.pool):
                    registry.get(response.pool).complete(response.hand, response.weighted_hand)
                    result.completed.append(response.pool)
            elif response.type == "SAVE_RESULT":
                result.saved.append(response.payload)
            elif response.type == "ERROR":
                result.errors.append(response.message)
                # A failed refresh still completes, with nothing playable
                if response.pool is not None and self._settle(registry, response.pool):
                    registry.get(response.pool).complete([], [])
                    result.completed.append(response.pool)
        return result

    def _settle(self, registry: PoolRegistry, pool_name: str) -> bool:
        """Account for one reply; True if it should be applied to the pool."""
        remaining = self._outstanding.get(pool_name, 0)
        if remaining > 0:
            remaining -= 1
            self._outstanding[pool_name] = remaining
        pool = registry.get(pool_name)
        if remaining > 0 or pool is None or pool.state is not PoolState.REFRESHING:
            logger.debug("Dropping stale reply for pool '%s'", pool_name)
            return False
        return True

    def mark_played(self, pool: str, storylet_id: str) -> None:
        self.worker.post(MarkPlayedRequest(pool=pool, storylet_id=storylet_id))

    def reset(self, pool: str | None) -> None:
        self.worker.post(ResetRequest(pool=pool))

    def load(self, payload: str) -> None:
        self.worker.post(LoadRequest(payload=payload))

    def request_save(self) -> None:
        self.worker.post(SaveRequest())

    def pending_replies(self) -> int:
        return sum(self._outstanding.values())

    def shutdown(self) -> None:
        """Stop the worker thread.  Safe to call more than once."""
        self._finalizer()
