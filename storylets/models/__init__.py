"""
storylets/models/ -- Data model for pools and the offload channel.

Submodules:
    base        StoryletRecord, PoolState and Pool.
    messages    Request/response messages exchanged with the offload worker.
"""

from storylets.models.base import Pool, PoolState, StoryletRecord

__all__ = ["Pool", "PoolState", "StoryletRecord"]
