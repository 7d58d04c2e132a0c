"""
storylets/config.py -- Settings for StoryletManager.

Settings are a pydantic model so that bad values (a zero tick budget, an
empty pool name) are rejected up front instead of surfacing as a stalled
refresh later.  A handful of fields can be overridden from the environment.

Usage::

    from storylets.config import ManagerSettings

    settings = ManagerSettings(storylets_per_tick=10)
    settings = ManagerSettings.from_env()   # honours STORYLETS_PER_TICK
"""

from __future__ import annotations

import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_POOL = "default"

# Environment variable -> settings field
_ENV_FIELDS = {
    "STORYLETS_PER_TICK": "storylets_per_tick",
    "STORYLETS_DEFAULT_POOL": "default_pool",
}


class ManagerSettings(BaseModel):
    """Tunables for registration naming and the refresh scheduler."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    storylets_per_tick: int = Field(
        default=5, ge=1,
        description="Predicate evaluations per tick() call, per refreshing pool.",
    )
    default_pool: str = Field(default=DEFAULT_POOL, min_length=1)
    separator: str = Field(
        default="_", min_length=1,
        description="Joins a group name to storylet ids: 'encounters' finds 'encounters_*'.",
    )
    predicate_prefix: str = Field(
        default="_",
        description="Prefix of the predicate function for a storylet or group.",
    )
    directive_prefix: str = Field(default="register:", min_length=1)
    once_tag: str = Field(default="once", min_length=1)
    worker_stop_timeout_ms: int = Field(default=5000, ge=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> ManagerSettings:
        """Build settings from environment variables plus explicit overrides.

        Explicit keyword overrides win over the environment.  Values are
        validated by pydantic, so ``STORYLETS_PER_TICK=0`` raises
        ``pydantic.ValidationError``.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        for var, field_name in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        values.update(overrides)
        return cls.model_validate(values)
