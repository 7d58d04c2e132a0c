"""
Shared pytest fixtures for the storylets test suite.

Provides:
    - qapp: a session-wide QCoreApplication for signal/slot machinery
    - make_content: builds a ScriptContent from predicate callables and tags
    - abc_content: the three-storylet deck used by the selection scenarios
    - make_manager: builds StoryletManagers and shuts them down afterwards
"""

import sys
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

# ---------------------------------------------------------------------------
# Ensure storylets/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storylets.config import ManagerSettings  # noqa: E402
from storylets.manager import StoryletManager  # noqa: E402
from storylets.scripted import ScriptContent, ScriptedEvaluator  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Make sure a QCoreApplication exists for the whole session."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def make_content():
    """Return a builder for ScriptContent.

    ``make_content(functions, knots=None, directives=(), state=None)``; when
    *knots* is omitted every storylet predicate ``_<id>`` gets an untagged
    knot ``<id>``.
    """
    def _make(functions, knots=None, directives=(), state=None):
        if knots is None:
            knots = {fid[1:]: [] for fid in functions if fid.startswith("_") and "_" in fid[1:]}
        return ScriptContent(
            functions=functions,
            knots=knots,
            directives=directives,
            initial_state=state or {},
        )
    return _make


@pytest.fixture
def abc_content(make_content):
    """deck_a weighs 2, deck_b weighs 0, deck_c weighs 1 and is once-only."""
    return make_content(
        functions={
            "_deck_a": lambda v: 2,
            "_deck_b": lambda v: 0,
            "_deck_c": lambda v: True,
        },
        knots={
            "deck_a": [],
            "deck_b": [],
            "deck_c": ["once"],
        },
    )


@pytest.fixture
def make_manager():
    """Return a StoryletManager builder; every manager is shut down on teardown."""
    created = []

    def _make(content, **kwargs):
        settings = kwargs.pop("settings", None) or ManagerSettings(
            storylets_per_tick=kwargs.pop("storylets_per_tick", 5),
        )
        evaluator = kwargs.pop("evaluator", None) or ScriptedEvaluator(content)
        if kwargs.pop("offload", False):
            manager = StoryletManager.offloaded(
                evaluator, ScriptedEvaluator, content, settings=settings, **kwargs,
            )
        else:
            manager = StoryletManager(evaluator, settings=settings, **kwargs)
        created.append(manager)
        return manager

    yield _make

    for manager in created:
        manager.shutdown()

