"""Shared pytest fixtures for crash-sandbox tests."""

import logging
import os
import sys
from collections.abc import Iterator

import pytest

from crash_sandbox._logging import LIBRARY_LOGGER_NAME, _NonBlockingHandler
from crash_sandbox.orchestrator import ScenarioRunner
from crash_sandbox.sandbox import ProcessSandbox
from crash_sandbox.settings import HarnessSettings

# ============================================================================
# Shared Skip Markers
# ============================================================================

# Every subject is a fork()ed copy of the test process.
skip_unless_posix = pytest.mark.skipif(
    not hasattr(os, "fork") or sys.platform == "win32",
    reason="Requires POSIX fork() and signal semantics",
)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Every test here forks subjects or installs POSIX signal handlers."""
    for item in items:
        item.add_marker(skip_unless_posix)


# ============================================================================
# Harness Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CRASH_SANDBOX_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("CRASH_SANDBOX_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def _reset_library_logging() -> Iterator[None]:
    """Undo configure_logging() calls made by a test (the CLI's -v/-q included)."""
    yield
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    for handler in list(lib_logger.handlers):
        if isinstance(handler, _NonBlockingHandler):
            lib_logger.removeHandler(handler)
            handler.close()
    lib_logger.setLevel(logging.NOTSET)


@pytest.fixture
def harness_settings() -> HarnessSettings:
    """Settings with a shorter grace delay than the library default.

    0.5s is still far longer than handler installation takes in a freshly
    forked subject; external-delivery tests stay reliable on loaded CI hosts.
    """
    return HarnessSettings(grace_delay_seconds=0.5, subject_sleep_seconds=10.0)


@pytest.fixture
def sandbox(harness_settings: HarnessSettings) -> ProcessSandbox:
    return ProcessSandbox(harness_settings)


@pytest.fixture
def runner(harness_settings: HarnessSettings) -> ScenarioRunner:
    """ScenarioRunner using the reference handler.

    Usage:
        def test_something(runner: ScenarioRunner) -> None:
            verdict = runner.run(Scenario(case=SignalCase.of(signal.SIGTERM)))
    """
    return ScenarioRunner(harness_settings)
