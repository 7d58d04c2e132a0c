"""
storylets/utils.py -- JSON file helpers for saved play-state.

A save file is either the previous complete save or the new complete save;
writes go to a sibling temp file that is swapped in with os.replace().
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


def safe_read_json(path, default=None):
    """Load the play-state file at *path*.

    A missing file is the normal "never saved" case and returns *default*
    quietly.  An unreadable or corrupt file also returns *default*, with a
    warning, so a bad save never stops a game from starting.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, OSError):
        logger.warning("Could not read JSON from %s", path, exc_info=True)
        return default


def safe_write_json(path, data, *, indent=2):
    """Replace the file at *path* with *data* as JSON.

    Missing parent directories are created.  If serialisation or the write
    fails, the temp file is removed and the old save is left as it was.
    """
    path = str(path)
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".storylets-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
