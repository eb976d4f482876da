"""Scenario and handler configuration for crash-sandbox.

Example:
    ```python
    import signal

    from crash_sandbox import Mode, Scenario, ScenarioRunner, SignalCase

    scenario = Scenario(case=SignalCase.of(signal.SIGABRT), mode=Mode.EXTERNAL)
    verdict = ScenarioRunner().run(scenario)
    assert verdict.passed, verdict.message
    ```
"""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crash_sandbox import constants
from crash_sandbox.exceptions import HarnessConfigError
from crash_sandbox.models import Mode
from crash_sandbox.signals import SignalCase


class FailureSignalHandlerOptions(BaseModel):
    """Options accepted by ``install_failure_signal_handler``.

    Attributes:
        symbolize_stacktrace: Print file, line and routine name for each
            frame. When False only code-object addresses are printed.
        call_previous_handler: After writing the report, call the Python
            handler that was installed before ours (if any) before the
            default disposition is re-raised.
        alarm_on_failure_seconds: Arm alarm() before writing the report so a
            hung report still kills the process. 0 disables the watchdog.
        writerfn: Receives the report text instead of writing it to fd 2.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    symbolize_stacktrace: bool = True
    call_previous_handler: bool = False
    alarm_on_failure_seconds: int = Field(
        default=constants.DEFAULT_ALARM_ON_FAILURE_SECONDS,
        ge=0,
        description="Watchdog armed while the report is written (0 disables)",
    )
    writerfn: Callable[[str], None] | None = Field(
        default=None,
        description="Report sink; None writes to the process's error stream",
    )


class Scenario(BaseModel):
    """One signal, one mode, one subject.

    Attributes:
        case: Signal under test.
        mode: Whether the subject raises on itself or waits for the parent.
        install_handler: False runs the negative configuration: the verdict
            passes only when no report appears and the subject dies by the
            signal's default disposition.
        stack_marker: Routine name that must appear in the captured stack.
            None skips the stack check.
        handler_options: Passed to the installer inside the subject.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )

    case: SignalCase
    mode: Mode = Mode.SELF_RAISE
    install_handler: bool = True
    stack_marker: str | None = None
    handler_options: FailureSignalHandlerOptions = Field(default_factory=FailureSignalHandlerOptions)

    @model_validator(mode="after")
    def _stack_check_needs_handler(self) -> Scenario:
        if self.stack_marker is not None and not self.install_handler:
            raise HarnessConfigError(
                "stack_marker requires install_handler=True",
                context={"signal": self.case.name, "stack_marker": self.stack_marker},
            )
        return self

    @property
    def scenario_id(self) -> str:
        suffix = "" if self.install_handler else "-nohandler"
        return f"{self.case.name}-{self.mode.value}{suffix}"
