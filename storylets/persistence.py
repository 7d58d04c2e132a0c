"""
storylets/persistence.py -- Play-state codec.

Only "which storylets have been played" is persisted here.  The predicate
evaluator's own world state is a separate concern: the caller saves and
restores it alongside this blob and refreshes afterwards.

Format::

    {"default": [["encounters_wolf", true], ["encounters_bear", false]],
     "side":    [["rumours_mill", false]]}

Blobs are validated against :data:`PLAY_STATE_SCHEMA` before anything is
applied, so a corrupt save never half-resets a manager.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, Mapping

import jsonschema

from storylets.errors import PlayStateError
from storylets.models.base import Pool
from storylets.registry import PoolRegistry
from storylets.utils import safe_read_json, safe_write_json

logger = logging.getLogger(__name__)

PlayState = dict[str, list[tuple[str, bool]]]

PLAY_STATE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": {
        "type": "array",
        "items": {
            "type": "array",
            "prefixItems": [{"type": "string"}, {"type": "boolean"}],
            "minItems": 2,
            "maxItems": 2,
        },
    },
}

_validator = jsonschema.Draft202012Validator(PLAY_STATE_SCHEMA)


def encode_play_state(pools: Iterable[Pool]) -> str:
    """Serialise ``(id, played)`` for every deck entry of every pool."""
    data = {pool.name: [[sid, played] for sid, played in pool.play_state()] for pool in pools}
    return json.dumps(data)


def validate_play_state(data) -> PlayState:
    """Check already-parsed play-state data; raise PlayStateError if malformed."""
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        where = "/".join(str(p) for p in first.absolute_path) or "<root>"
        raise PlayStateError(f"Invalid play-state at {where}: {first.message}")
    return {pool: [(sid, played) for sid, played in entries] for pool, entries in data.items()}


def decode_play_state(blob: str) -> PlayState:
    """Parse and validate a blob produced by :func:`encode_play_state`."""
    try:
        data = json.loads(blob)
    except (TypeError, json.JSONDecodeError) as e:
        raise PlayStateError(f"Play-state is not valid JSON: {e}") from e
    return validate_play_state(data)


def apply_play_state(pools: PoolRegistry | Mapping[str, Pool], data: PlayState) -> int:
    """Copy ``played`` flags onto pools that still hold the ids.

    Pools and ids that no longer exist are dropped silently, so saves stay
    loadable after content changes.  Returns the number of ids applied.
    """
    applied = 0
    for pool_name, entries in data.items():
        pool = pools.get(pool_name)
        if pool is None:
            logger.debug("Skipping saved play-state for unknown pool '%s'", pool_name)
            continue
        for storylet_id, played in entries:
            record = pool.deck.get(storylet_id)
            if record is not None:
                record.played = played
                applied += 1
    return applied


def write_play_state_file(path, blob: str) -> None:
    """Atomically write an encoded blob to *path*."""
    safe_write_json(path, json.loads(blob))


def read_play_state_file(path) -> str | None:
    """Return the blob stored at *path*, or None if there is no save."""
    data = safe_read_json(path)
    if data is None:
        return None
    validate_play_state(data)
    return json.dumps(data)
