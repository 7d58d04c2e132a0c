"""
storylets/paths.py -- Default locations for saved play-state.

Uses platformdirs so that saves land in the per-user data directory of the
host platform when the caller does not pass an explicit path.
"""

from __future__ import annotations

import os

from platformdirs import user_data_dir

_APP_NAME = "Storylets"
_APP_AUTHOR = "Storylets"

SAVE_FILENAME = "storylets-state.json"


def get_user_data_dir() -> str:
    """Return the platform-appropriate user data directory, creating it."""
    path = user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def default_save_path() -> str:
    """Return the path used by ``save_to_file()`` when none is given."""
    return os.path.join(get_user_data_dir(), SAVE_FILENAME)
