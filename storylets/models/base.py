"""
storylets/models/base.py -- Storylet records and pool state.

A Pool owns its deck outright; records are never shared between pools, so
marking a storylet played in one pool never leaks into another that happens
to register the same id.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PoolState(Enum):
    NEEDS_REFRESH = "needs_refresh"
    REFRESHING = "refreshing"
    REFRESH_COMPLETE = "refresh_complete"


class StoryletRecord(BaseModel):
    """One registered storylet.

    ``id`` and ``discard_after_play`` are fixed at registration; ``played``
    only returns to False through a reset or a load.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, frozen=True)
    discard_after_play: bool = Field(default=False, frozen=True)
    played: bool = False
    group_gate_id: str | None = None

    @property
    def exhausted(self) -> bool:
        """True when this storylet can never be eligible again until reset."""
        return self.discard_after_play and self.played


@dataclass
class Pool:
    """A named, independently refreshable collection of storylets."""
    name: str
    deck: dict[str, StoryletRecord] = field(default_factory=dict)
    hand: list[str] = field(default_factory=list)
    weighted_hand: list[str] = field(default_factory=list)
    state: PoolState = PoolState.NEEDS_REFRESH
    pending_queue: deque[StoryletRecord] = field(default_factory=deque)

    @property
    def is_ready(self) -> bool:
        return self.state is PoolState.REFRESH_COMPLETE

    @property
    def is_refreshing(self) -> bool:
        return self.state is PoolState.REFRESHING

    def add(self, record: StoryletRecord) -> StoryletRecord:
        """Insert or overwrite a record, keeping the old ``played`` flag."""
        previous = self.deck.get(record.id)
        if previous is not None:
            record.played = previous.played
        self.deck[record.id] = record
        return record

    def gate_ids(self) -> list[str]:
        """Distinct group gates referenced by this pool's deck, in deck order."""
        seen: dict[str, None] = {}
        for record in self.deck.values():
            if record.group_gate_id is not None:
                seen.setdefault(record.group_gate_id, None)
        return list(seen)

    def begin_refresh(self, queue) -> None:
        self.hand = []
        self.weighted_hand = []
        self.pending_queue = deque(queue)
        self.state = PoolState.REFRESHING

    def accept(self, storylet_id: str, weight: int) -> None:
        """Add an evaluated storylet to the hand; weight <= 0 is ignored."""
        if weight <= 0:
            return
        self.hand.append(storylet_id)
        self.weighted_hand.extend([storylet_id] * weight)

    def complete(self, hand=None, weighted_hand=None) -> None:
        """Finish a refresh, optionally replacing the hand wholesale."""
        if hand is not None:
            self.hand = list(hand)
        if weighted_hand is not None:
            self.weighted_hand = list(weighted_hand)
        self.pending_queue.clear()
        self.state = PoolState.REFRESH_COMPLETE

    def mark_played(self, storylet_id: str) -> bool:
        record = self.deck.get(storylet_id)
        if record is None:
            return False
        record.played = True
        return True

    def reset(self) -> None:
        """Forget play-state and any in-flight refresh."""
        for record in self.deck.values():
            record.played = False
        self.pending_queue.clear()
        self.hand = []
        self.weighted_hand = []
        self.state = PoolState.NEEDS_REFRESH

    def play_state(self) -> list[tuple[str, bool]]:
        return [(record.id, record.played) for record in self.deck.values()]
