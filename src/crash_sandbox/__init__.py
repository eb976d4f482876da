"""crash-sandbox: verify crash-diagnostic signal handlers from outside the crash.

A handler that reports fatal signals kills the process it runs in, so its
behaviour can only be observed from another process.  crash-sandbox forks an
isolated subject, captures everything it writes, raises or delivers one of
the fatal signals (SIGSEGV, SIGILL, SIGFPE, SIGABRT, SIGTERM), reaps it and
checks the captured report.

Quick Start (whole suite):
    ```python
    from crash_sandbox import ScenarioRunner

    report = ScenarioRunner().run_suite()
    assert report.ok, [v.message for v in report.failed]
    ```

Single scenario with a custom handler:
    ```python
    import signal

    from crash_sandbox import Mode, Scenario, ScenarioRunner, SignalCase

    runner = ScenarioRunner(installer=my_install_function)
    verdict = runner.run(Scenario(case=SignalCase.of(signal.SIGABRT), mode=Mode.EXTERNAL))
    ```

Death test inside pytest:
    ```python
    from crash_sandbox import expect_death

    expect_death(crash_somehow, rb"received at time=")
    ```

Requirements:
    - POSIX (fork, pipes, signals)
    - Python 3.12+
"""

from crash_sandbox.config import FailureSignalHandlerOptions, Scenario
from crash_sandbox.death_test import expect_death
from crash_sandbox.exceptions import (
    DeathTestFailure,
    HarnessConfigError,
    PatternMismatchError,
    ResourceExhaustedError,
    SandboxError,
    SetupError,
    SpawnError,
    SubjectGoneError,
    UnexpectedSurvivalError,
)
from crash_sandbox.failure_handler import install_failure_signal_handler
from crash_sandbox.models import ExitStatus, FailureKind, Mode, ScenarioState, SuiteReport, Verdict
from crash_sandbox.orchestrator import ScenarioRunner, build_scenarios, default_scenarios
from crash_sandbox.sandbox import ProcessSandbox, Subject
from crash_sandbox.settings import HarnessSettings
from crash_sandbox.signals import FAILURE_SIGNALS, SignalCase, failure_signal_to_string

__all__ = [
    "FAILURE_SIGNALS",
    "DeathTestFailure",
    "ExitStatus",
    "FailureKind",
    "FailureSignalHandlerOptions",
    "HarnessConfigError",
    "HarnessSettings",
    "Mode",
    "PatternMismatchError",
    "ProcessSandbox",
    "ResourceExhaustedError",
    "SandboxError",
    "Scenario",
    "ScenarioRunner",
    "ScenarioState",
    "SetupError",
    "SignalCase",
    "SpawnError",
    "Subject",
    "SubjectGoneError",
    "SuiteReport",
    "UnexpectedSurvivalError",
    "Verdict",
    "build_scenarios",
    "default_scenarios",
    "expect_death",
    "failure_signal_to_string",
    "install_failure_signal_handler",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("crash-sandbox")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
