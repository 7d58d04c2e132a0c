"""
storylets/runner.py -- Helpers that drive StoryletManager.tick().

Hosts with a frame loop simply call ``manager.tick()`` every frame.  These
helpers cover the other two cases: a blocking "refresh and wait" for scripts
and tests, and a QTimer-driven driver for Qt event loops.

Usage::

    manager.refresh()
    if not run_until_ready(manager, timeout=2.0):
        ...

    driver = TickDriver(manager)
    driver.finished.connect(on_everything_ready)
    driver.start()
"""

from __future__ import annotations

import logging
import time

from PySide6.QtCore import QObject, QTimer, Signal

logger = logging.getLogger(__name__)


def run_until_ready(manager, max_ticks: int | None = None, timeout: float | None = None,
                    poll_interval: float = 0.0) -> bool:
    """Call ``manager.tick()`` until every pool is ready.

    Parameters
    ----------
    manager : StoryletManager
        The manager to drive.  Start a refresh first.
    max_ticks : int, optional
        Give up after this many ticks.
    timeout : float, optional
        Give up after this many seconds.
    poll_interval : float
        Sleep between ticks; useful with an offload worker so the loop does
        not spin while replies are in flight.

    Returns
    -------
    bool
        ``manager.all_ready()`` when the loop stopped.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    ticks = 0
    while not manager.all_ready():
        if max_ticks is not None and ticks >= max_ticks:
            logger.warning("Pools not ready after %d ticks", ticks)
            return False
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("Pools not ready after %.2fs", timeout)
            return False
        manager.tick()
        ticks += 1
        if poll_interval and not manager.all_ready():
            time.sleep(poll_interval)
    return True


class TickDriver(QObject):
    """Ticks a manager from the Qt event loop until all pools are ready.

    Signals
    -------
    finished()
        Emitted once when ``manager.all_ready()`` becomes true.
    """

    finished = Signal()

    def __init__(self, manager, interval_ms: int = 0, parent=None):
        super().__init__(parent)
        self._manager = manager
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)

    @property
    def active(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()

    def _on_timeout(self) -> None:
        self._manager.tick()
        if self._manager.all_ready():
            self._timer.stop()
            self.finished.emit()
