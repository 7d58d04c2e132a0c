"""
Storylets -- pool refresh engine for storylet-driven narrative.

Package layout:
    manager      StoryletManager, the public facade (Qt signals)
    scheduler    Refresh state machine and the inline backend
    offload      Worker-thread backend and its message channel
    evaluator    Predicate evaluator contract and result mapping
    scripted     In-memory evaluator over Python callables
    persistence  Play-state save/load
    runner       Helpers that drive tick()
    models/      Storylet records, pools, channel messages
"""

from storylets.config import ManagerSettings
from storylets.errors import (
    ChannelError,
    MissingFunctionError,
    PlayStateError,
    StoryletError,
)
from storylets.evaluator import PredicateEvaluator
from storylets.manager import StoryletManager
from storylets.models import Pool, PoolState, StoryletRecord
from storylets.offload import ChannelBackend, OffloadWorker
from storylets.runner import TickDriver, run_until_ready
from storylets.scheduler import DirectBackend, RefreshBackend
from storylets.scripted import ScriptContent, ScriptedEvaluator

__all__ = [
    "ChannelBackend",
    "ChannelError",
    "DirectBackend",
    "ManagerSettings",
    "MissingFunctionError",
    "OffloadWorker",
    "PlayStateError",
    "Pool",
    "PoolState",
    "PredicateEvaluator",
    "RefreshBackend",
    "ScriptContent",
    "ScriptedEvaluator",
    "StoryletError",
    "StoryletManager",
    "StoryletRecord",
    "TickDriver",
    "run_until_ready",
]
