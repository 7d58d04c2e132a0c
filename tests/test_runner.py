"""
Tests for storylets/runner.py -- run_until_ready and the QTimer TickDriver.
"""

import logging
from unittest.mock import MagicMock

from PySide6.QtCore import QCoreApplication, QEventLoop, QTimer

from storylets.runner import TickDriver, run_until_ready


def _world(make_content, size):
    return make_content({f"_g_{i}": (lambda v: True) for i in range(size)})


class TestRunUntilReady:
    def test_drives_to_ready(self, make_manager, make_content):
        manager = make_manager(_world(make_content, 7), storylets_per_tick=2)
        manager.add_to_pool("g")
        manager.refresh()
        assert run_until_ready(manager) is True
        assert len(manager.get_playable()) == 7

    def test_already_ready_does_not_tick(self, make_manager, make_content):
        manager = make_manager(_world(make_content, 1))
        manager.add_to_pool("g")
        manager.refresh()
        run_until_ready(manager)
        manager.tick = MagicMock()
        assert run_until_ready(manager) is True
        manager.tick.assert_not_called()

    def test_max_ticks(self, make_manager, make_content, caplog):
        manager = make_manager(_world(make_content, 10), storylets_per_tick=1)
        manager.add_to_pool("g")
        manager.refresh()
        with caplog.at_level(logging.WARNING):
            assert run_until_ready(manager, max_ticks=3) is False
        assert "after 3 ticks" in caplog.text
        assert len(manager.get_pool().pending_queue) == 7

    def test_never_ready_without_pools(self, make_manager, make_content):
        manager = make_manager(make_content({}))
        assert run_until_ready(manager, max_ticks=5) is False

    def test_timeout(self, make_manager, make_content):
        manager = make_manager(make_content({}))
        assert run_until_ready(manager, timeout=0.02, poll_interval=0.005) is False


class TestTickDriver:
    def _run_loop(self, driver, timeout_ms=2000):
        loop = QEventLoop()
        driver.finished.connect(loop.quit)
        QTimer.singleShot(timeout_ms, loop.quit)
        driver.start()
        loop.exec()

    def test_finishes_when_ready(self, make_manager, make_content):
        manager = make_manager(_world(make_content, 9), storylets_per_tick=2)
        manager.add_to_pool("g")
        manager.refresh()

        driver = TickDriver(manager)
        finished = MagicMock()
        driver.finished.connect(finished)
        self._run_loop(driver)

        assert manager.all_ready()
        finished.assert_called_once()
        assert not driver.active

    def test_offloaded_manager(self, make_manager, make_content):
        manager = make_manager(_world(make_content, 4), offload=True)
        manager.add_to_pool("g")
        manager.refresh()
        driver = TickDriver(manager, interval_ms=1)
        self._run_loop(driver)
        assert manager.get_playable() == ["g_0", "g_1", "g_2", "g_3"]

    def test_cancel(self, make_manager, make_content):
        manager = make_manager(_world(make_content, 50), storylets_per_tick=1)
        manager.add_to_pool("g")
        manager.refresh()
        driver = TickDriver(manager)
        driver.start()
        assert driver.active
        driver.cancel()
        QCoreApplication.processEvents()
        assert not driver.active
        assert not manager.all_ready()
