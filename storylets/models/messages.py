"""
storylets/models/messages.py -- Offload channel protocol.

Requests flow from the orchestrating thread to the OffloadWorker; responses
flow back.  Messages are immutable pydantic models and carry plain data only
(ids, flags, the state token), so nothing mutable is aliased across threads.
The one exception is INIT, whose ``content`` is the evaluator's compiled,
read-only content.

    INIT(content)                          -> INIT_COMPLETE | ERROR
    REGISTER(pool, storylets)              -> (no reply)
    REFRESH(pool?, state_token, overrides) -> REFRESH_COMPLETE per pool
    MARK_PLAYED(pool, storylet_id)         -> (no reply)
    RESET(pool?)                           -> (no reply)
    SAVE()                                 -> SAVE_RESULT(payload)
    LOAD(payload)                          -> (no reply)

Any handler failure yields ERROR(message, pool?) and the channel keeps going.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)


# ------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------

class RegisteredStorylet(_Message):
    id: str
    discard_after_play: bool = False
    group_gate_id: str | None = None


class InitRequest(_Message):
    type: Literal["INIT"] = "INIT"
    content: Any = None


class RegisterRequest(_Message):
    type: Literal["REGISTER"] = "REGISTER"
    pool: str
    storylets: tuple[RegisteredStorylet, ...] = ()


class RefreshRequest(_Message):
    type: Literal["REFRESH"] = "REFRESH"
    pool: str | None = None
    state_token: str
    gate_overrides: dict[str, bool] = Field(default_factory=dict)


class MarkPlayedRequest(_Message):
    type: Literal["MARK_PLAYED"] = "MARK_PLAYED"
    pool: str
    storylet_id: str


class ResetRequest(_Message):
    type: Literal["RESET"] = "RESET"
    pool: str | None = None


class SaveRequest(_Message):
    type: Literal["SAVE"] = "SAVE"


class LoadRequest(_Message):
    type: Literal["LOAD"] = "LOAD"
    payload: str


WorkerRequest = Union[
    InitRequest, RegisterRequest, RefreshRequest, MarkPlayedRequest,
    ResetRequest, SaveRequest, LoadRequest,
]


# ------------------------------------------------------------------
# Responses
# ------------------------------------------------------------------

class InitComplete(_Message):
    type: Literal["INIT_COMPLETE"] = "INIT_COMPLETE"


class RefreshComplete(_Message):
    type: Literal["REFRESH_COMPLETE"] = "REFRESH_COMPLETE"
    pool: str
    hand: tuple[str, ...] = ()
    weighted_hand: tuple[str, ...] = ()


class SaveResult(_Message):
    type: Literal["SAVE_RESULT"] = "SAVE_RESULT"
    payload: str


class ErrorResponse(_Message):
    type: Literal["ERROR"] = "ERROR"
    message: str
    pool: str | None = None


WorkerResponse = Union[InitComplete, RefreshComplete, SaveResult, ErrorResponse]
