"""
Tests for storylets/models/ -- StoryletRecord, Pool and channel messages.
"""

import pytest
from pydantic import ValidationError

from storylets.models import Pool, PoolState, StoryletRecord
from storylets.models.messages import (
    ErrorResponse,
    RefreshComplete,
    RefreshRequest,
    RegisteredStorylet,
    RegisterRequest,
)


# ------------------------------------------------------------------
# StoryletRecord
# ------------------------------------------------------------------


class TestStoryletRecord:
    def test_defaults(self):
        record = StoryletRecord(id="enc_wolf")
        assert record.played is False
        assert record.discard_after_play is False
        assert record.group_gate_id is None
        assert record.exhausted is False

    def test_exhausted_only_when_once_and_played(self):
        record = StoryletRecord(id="enc_wolf", discard_after_play=True)
        assert not record.exhausted
        record.played = True
        assert record.exhausted

        repeatable = StoryletRecord(id="enc_bear", played=True)
        assert not repeatable.exhausted

    def test_id_and_once_flag_are_frozen(self):
        record = StoryletRecord(id="enc_wolf")
        with pytest.raises(ValidationError):
            record.id = "enc_bear"
        with pytest.raises(ValidationError):
            record.discard_after_play = True

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            StoryletRecord(id="")

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            StoryletRecord(id="enc_wolf", weight=3)


# ------------------------------------------------------------------
# Pool
# ------------------------------------------------------------------


class TestPool:
    def test_new_pool_needs_refresh(self):
        pool = Pool(name="main")
        assert pool.state is PoolState.NEEDS_REFRESH
        assert not pool.is_ready
        assert not pool.is_refreshing

    def test_add_overwrites_but_keeps_played(self):
        pool = Pool(name="main")
        pool.add(StoryletRecord(id="a_1"))
        pool.mark_played("a_1")
        pool.add(StoryletRecord(id="a_1", group_gate_id="_a"))
        assert len(pool.deck) == 1
        assert pool.deck["a_1"].played is True
        assert pool.deck["a_1"].group_gate_id == "_a"

    def test_gate_ids_are_distinct(self):
        pool = Pool(name="main")
        pool.add(StoryletRecord(id="a_1", group_gate_id="_a"))
        pool.add(StoryletRecord(id="a_2", group_gate_id="_a"))
        pool.add(StoryletRecord(id="b_1", group_gate_id="_b"))
        pool.add(StoryletRecord(id="c_1"))
        assert pool.gate_ids() == ["_a", "_b"]

    def test_refresh_cycle(self):
        pool = Pool(name="main")
        pool.add(StoryletRecord(id="a_1"))
        pool.begin_refresh(pool.deck.values())
        assert pool.is_refreshing
        assert len(pool.pending_queue) == 1

        pool.pending_queue.popleft()
        pool.accept("a_1", 3)
        pool.accept("a_2", 0)
        pool.complete()
        assert pool.is_ready
        assert pool.hand == ["a_1"]
        assert pool.weighted_hand == ["a_1", "a_1", "a_1"]

    def test_begin_refresh_clears_hands(self):
        pool = Pool(name="main", hand=["x"], weighted_hand=["x"])
        pool.begin_refresh([])
        assert pool.hand == []
        assert pool.weighted_hand == []

    def test_complete_with_replacement_hand(self):
        pool = Pool(name="main")
        pool.begin_refresh([StoryletRecord(id="a_1")])
        pool.complete(("a_1",), ("a_1", "a_1"))
        assert pool.hand == ["a_1"]
        assert pool.weighted_hand == ["a_1", "a_1"]
        assert not pool.pending_queue

    def test_mark_played_unknown_id(self):
        assert Pool(name="main").mark_played("ghost") is False

    def test_reset(self):
        pool = Pool(name="main")
        pool.add(StoryletRecord(id="a_1", played=True))
        pool.begin_refresh(pool.deck.values())
        pool.reset()
        assert pool.state is PoolState.NEEDS_REFRESH
        assert not pool.pending_queue
        assert pool.deck["a_1"].played is False

    def test_play_state(self):
        pool = Pool(name="main")
        pool.add(StoryletRecord(id="a_1", played=True))
        pool.add(StoryletRecord(id="a_2"))
        assert pool.play_state() == [("a_1", True), ("a_2", False)]


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


class TestMessages:
    def test_type_discriminators(self):
        assert RefreshRequest(state_token="{}").type == "REFRESH"
        assert RefreshComplete(pool="main").type == "REFRESH_COMPLETE"
        assert ErrorResponse(message="x").type == "ERROR"

    def test_messages_are_frozen(self):
        msg = RefreshRequest(pool="main", state_token="{}")
        with pytest.raises(ValidationError):
            msg.pool = "side"

    def test_register_carries_plain_data(self):
        msg = RegisterRequest(
            pool="main",
            storylets=[RegisteredStorylet(id="a_1", discard_after_play=True, group_gate_id="_a")],
        )
        assert isinstance(msg.storylets, tuple)
        assert msg.storylets[0].group_gate_id == "_a"

    def test_gate_overrides_copied(self):
        overrides = {"_a": False}
        msg = RefreshRequest(state_token="{}", gate_overrides=overrides)
        overrides["_a"] = True
        assert msg.gate_overrides == {"_a": False}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ErrorResponse(message="x", detail="y")
