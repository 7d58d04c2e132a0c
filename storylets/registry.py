"""
storylets/registry.py -- The set of named pools.

Pools are created the first time they are named and then live as long as the
registry does; there is no way to remove one.  Iteration order is creation
order, which is also the order refresh-all and tick() visit pools in.
"""

from __future__ import annotations

from typing import Iterator

from storylets.models.base import Pool, PoolState


class PoolRegistry:
    """Owns every Pool by name."""

    def __init__(self):
        self._pools: dict[str, Pool] = {}

    def get(self, name: str) -> Pool | None:
        return self._pools.get(name)

    def get_or_create(self, name: str) -> tuple[Pool, bool]:
        """Return ``(pool, created)``."""
        pool = self._pools.get(name)
        if pool is not None:
            return pool, False
        pool = Pool(name=name)
        self._pools[name] = pool
        return pool, True

    def targets(self, name: str | None) -> list[Pool]:
        """The named pool (if registered), or every pool when *name* is None."""
        if name is None:
            return list(self._pools.values())
        pool = self._pools.get(name)
        return [pool] if pool is not None else []

    def refreshing(self) -> list[Pool]:
        return [p for p in self._pools.values() if p.state is PoolState.REFRESHING]

    def all_ready(self) -> bool:
        """True iff at least one pool exists and every pool is REFRESH_COMPLETE."""
        if not self._pools:
            return False
        return all(p.state is PoolState.REFRESH_COMPLETE for p in self._pools.values())

    def pools_holding(self, storylet_id: str) -> list[Pool]:
        return [p for p in self._pools.values() if storylet_id in p.deck]

    @property
    def names(self) -> list[str]:
        return list(self._pools)

    def __iter__(self) -> Iterator[Pool]:
        return iter(list(self._pools.values()))

    def __len__(self) -> int:
        return len(self._pools)

    def __contains__(self, name: str) -> bool:
        return name in self._pools
