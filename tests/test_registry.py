"""
Tests for storylets/registry.py -- PoolRegistry.
"""

from storylets.models import PoolState, StoryletRecord
from storylets.registry import PoolRegistry


class TestPoolRegistry:
    def test_get_or_create(self):
        registry = PoolRegistry()
        pool, created = registry.get_or_create("main")
        again, created_again = registry.get_or_create("main")
        assert created and not created_again
        assert pool is again
        assert "main" in registry
        assert len(registry) == 1

    def test_get_does_not_create(self):
        registry = PoolRegistry()
        assert registry.get("main") is None
        assert len(registry) == 0

    def test_names_in_creation_order(self):
        registry = PoolRegistry()
        for name in ("side", "main", "default"):
            registry.get_or_create(name)
        assert registry.names == ["side", "main", "default"]
        assert [p.name for p in registry] == ["side", "main", "default"]

    def test_targets(self):
        registry = PoolRegistry()
        registry.get_or_create("main")
        registry.get_or_create("side")
        assert [p.name for p in registry.targets(None)] == ["main", "side"]
        assert [p.name for p in registry.targets("side")] == ["side"]
        assert registry.targets("missing") == []

    def test_all_ready_requires_a_pool(self):
        assert PoolRegistry().all_ready() is False

    def test_all_ready(self):
        registry = PoolRegistry()
        main, _ = registry.get_or_create("main")
        side, _ = registry.get_or_create("side")
        main.complete()
        assert not registry.all_ready()
        side.complete()
        assert registry.all_ready()

    def test_refreshing(self):
        registry = PoolRegistry()
        main, _ = registry.get_or_create("main")
        registry.get_or_create("side")
        main.begin_refresh([])
        assert registry.refreshing() == [main]
        assert main.state is PoolState.REFRESHING

    def test_pools_holding(self):
        registry = PoolRegistry()
        main, _ = registry.get_or_create("main")
        side, _ = registry.get_or_create("side")
        main.add(StoryletRecord(id="a_1"))
        side.add(StoryletRecord(id="a_1"))
        side.add(StoryletRecord(id="b_1"))
        assert registry.pools_holding("a_1") == [main, side]
        assert registry.pools_holding("b_1") == [side]
        assert registry.pools_holding("zzz") == []
