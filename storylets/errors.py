"""
storylets/errors.py -- Exception hierarchy for the storylet engine.

Nothing in the refresh engine is fatal: evaluation and registration problems
are logged and skipped.  These exceptions exist for the few places where the
caller has to hear about a problem (malformed saved play-state, a predicate
evaluator that does not know a function, a worker used before INIT).
"""


class StoryletError(Exception):
    """Base class for every error raised by the storylets package."""


class MissingFunctionError(StoryletError, LookupError):
    """Raised by a predicate evaluator when a function id does not exist."""

    def __init__(self, function_id: str):
        super().__init__(f"No predicate function named '{function_id}'")
        self.function_id = function_id


class PlayStateError(StoryletError, ValueError):
    """Raised when a saved play-state blob cannot be decoded or validated."""


class ChannelError(StoryletError, RuntimeError):
    """Raised inside the offload worker when a request cannot be served."""
