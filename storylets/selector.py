"""
storylets/selector.py -- Weighted random selection.

A weighted hand lists each eligible id once per unit of weight, so a uniform
draw over it picks higher-weight storylets proportionally more often.
"""

from __future__ import annotations

import random
from typing import Sequence


def draw(weighted_hand: Sequence[str], rng: random.Random | None = None) -> str | None:
    """Draw one id uniformly from *weighted_hand*; None if it is empty."""
    if not weighted_hand:
        return None
    rng = rng or random
    return weighted_hand[rng.randrange(len(weighted_hand))]


def weight_table(weighted_hand: Sequence[str]) -> dict[str, int]:
    """Collapse a weighted hand back to ``{id: weight}``, first-seen order."""
    table: dict[str, int] = {}
    for storylet_id in weighted_hand:
        table[storylet_id] = table.get(storylet_id, 0) + 1
    return table
