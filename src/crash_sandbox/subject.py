"""Role behaviours executed inside a subject after its streams are redirected.

Each behaviour installs the handler under test (unless told not to) and then
either raises the target signal on itself or waits for the parent to deliver
it.  If the process is still alive when the behaviour returns, the sandbox
exits it normally, which the orchestrator reports as unexpected survival.
"""

from __future__ import annotations

import os
import signal
import time
from collections.abc import Callable
from functools import partial
from typing import Protocol

from crash_sandbox import constants
from crash_sandbox.config import FailureSignalHandlerOptions, Scenario
from crash_sandbox.models import Mode


class HandlerInstaller(Protocol):
    """Installation contract of the handler under test."""

    def __call__(self, options: FailureSignalHandlerOptions) -> None: ...


def signal_ready() -> None:
    """Tell the parent the handler is installed (readiness handshake)."""
    os.write(1, constants.READY_SENTINEL)


def install_and_raise(
    signo: int,
    installer: HandlerInstaller | None,
    options: FailureSignalHandlerOptions,
) -> None:
    if installer is not None:
        installer(options)
    signal.raise_signal(signo)


def install_and_sleep(
    installer: HandlerInstaller | None,
    options: FailureSignalHandlerOptions,
    sleep_seconds: float,
    *,
    handshake: bool = False,
) -> None:
    if installer is not None:
        installer(options)
    if handshake:
        signal_ready()
    # The parent's signal interrupts this sleep; the handler then kills the process.
    time.sleep(sleep_seconds)


def behavior_for(
    scenario: Scenario,
    installer: HandlerInstaller,
    *,
    sleep_seconds: float = constants.DEFAULT_SUBJECT_SLEEP_SECONDS,
    handshake: bool = False,
) -> Callable[[], None]:
    """Zero-argument role behaviour for ``scenario``."""
    active_installer = installer if scenario.install_handler else None
    if scenario.mode is Mode.SELF_RAISE:
        return partial(install_and_raise, scenario.case.signo, active_installer, scenario.handler_options)
    return partial(
        install_and_sleep,
        active_installer,
        scenario.handler_options,
        sleep_seconds,
        handshake=handshake,
    )
