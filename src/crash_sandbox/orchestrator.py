"""Scenario driver: spawn, signal, capture, reap, verify.

Each scenario walks SPAWNED → CAPTURING → SIGNALED → REAPED → VERIFIED and
ends with exactly one Verdict.  A SandboxError during setup ends it in
ERRORED with a SETUP_FAILURE verdict instead.  Nothing is retried: a failed
match is a reported failure.

Example:
    ```python
    from crash_sandbox import ScenarioRunner

    report = ScenarioRunner().run_suite()
    for verdict in report.failed:
        print(verdict.scenario_id, verdict.message)
    ```
"""

from __future__ import annotations

import re
import signal
from collections.abc import Iterable, Sequence

from crash_sandbox import constants, matcher
from crash_sandbox._logging import get_logger
from crash_sandbox.config import FailureSignalHandlerOptions, Scenario
from crash_sandbox.exceptions import SandboxError
from crash_sandbox.failure_handler import install_failure_signal_handler
from crash_sandbox.models import ExitStatus, FailureKind, Mode, ScenarioState, SuiteReport, Verdict
from crash_sandbox.sandbox import ProcessSandbox, Subject
from crash_sandbox.settings import HarnessSettings
from crash_sandbox.signals import FAILURE_SIGNALS, SignalCase
from crash_sandbox.subject import HandlerInstaller, behavior_for

logger = get_logger(__name__)


def build_scenarios(
    signals: Iterable[int] | None = None,
    modes: Iterable[Mode] = (Mode.SELF_RAISE,),
    *,
    install_handler: bool = True,
    stack_marker: str | None = constants.RUNNER_ENTRY_FRAME,
    handler_options: FailureSignalHandlerOptions | None = None,
) -> list[Scenario]:
    """Cartesian product of signals and modes.

    Abort scenarios carry ``stack_marker`` (when the handler is installed) to
    prove a genuine stack was walked; other signals check the report line only.
    """
    options = handler_options or FailureSignalHandlerOptions()
    mode_list = list(modes)
    scenarios = []
    for signo in signals if signals is not None else FAILURE_SIGNALS:
        case = SignalCase.of(signo)
        marker = stack_marker if install_handler and signo == signal.SIGABRT else None
        scenarios.extend(
            Scenario(
                case=case,
                mode=mode,
                install_handler=install_handler,
                stack_marker=marker,
                handler_options=options,
            )
            for mode in mode_list
        )
    return scenarios


def default_scenarios(*, install_handler: bool = True) -> list[Scenario]:
    """Every catalog signal self-raised, plus abort delivered externally."""
    scenarios = build_scenarios(install_handler=install_handler)
    scenarios += build_scenarios(
        signals=[signal.SIGABRT],
        modes=[Mode.EXTERNAL],
        install_handler=install_handler,
    )
    return scenarios


class ScenarioRunner:
    """Runs scenarios in isolated subjects and produces verdicts.

    Args:
        settings: Timing, capture and subject settings (env defaults if None)
        installer: Handler installation callable run inside each subject
        sandbox: Process sandbox (built from ``settings`` if None)
    """

    def __init__(
        self,
        settings: HarnessSettings | None = None,
        installer: HandlerInstaller = install_failure_signal_handler,
        sandbox: ProcessSandbox | None = None,
    ) -> None:
        self.settings = settings or HarnessSettings()
        self.installer = installer
        self.sandbox = sandbox or ProcessSandbox(self.settings)

    def run_suite(self, scenarios: Sequence[Scenario] | None = None) -> SuiteReport:
        """Run every scenario; one scenario's failure never stops the others."""
        if scenarios is None:
            scenarios = default_scenarios(install_handler=self.settings.install_handler)

        verdicts = [self.run(scenario) for scenario in scenarios]
        report = SuiteReport(verdicts=verdicts)
        logger.info(
            "Suite finished",
            extra={"passed": len(report.passed), "failed": len(report.failed)},
        )
        return report

    def run(self, scenario: Scenario) -> Verdict:
        pattern = matcher.build_pattern(scenario.case)
        behavior = behavior_for(
            scenario,
            self.installer,
            sleep_seconds=self.settings.subject_sleep_seconds,
            handshake=self.settings.readiness_handshake,
        )

        state = ScenarioState.PENDING
        subject: Subject | None = None
        try:
            subject = self.sandbox.spawn(behavior)
            state = self._advance(scenario, ScenarioState.SPAWNED, subject)

            state = self._advance(scenario, ScenarioState.CAPTURING, subject)
            if scenario.mode is Mode.EXTERNAL:
                if self.settings.readiness_handshake:
                    self.sandbox.wait_until_ready(subject)
                    self.sandbox.deliver_signal(subject, scenario.case.signo, grace_delay=0)
                else:
                    self.sandbox.deliver_signal(subject, scenario.case.signo)
            state = self._advance(scenario, ScenarioState.SIGNALED, subject)

            output, exit_status = self.sandbox.run(subject)
            state = self._advance(scenario, ScenarioState.REAPED, subject)
        except SandboxError as e:
            if subject is not None:
                self.sandbox.cleanup(subject)
            logger.warning(
                "Scenario setup failed",
                extra={"scenario": scenario.scenario_id, "state": state.value, **e.context},
            )
            return Verdict(
                scenario_id=scenario.scenario_id,
                case=scenario.case,
                mode=scenario.mode,
                state=ScenarioState.ERRORED,
                passed=False,
                failure=FailureKind.SETUP_FAILURE,
                message=f"{type(e).__name__}: {e.message}",
                expected_pattern=matcher.describe(pattern),
                output=(subject.output or b"") if subject is not None else b"",
                exit_status=subject.exit_status if subject is not None else None,
            )

        failure, message = self._verify(scenario, pattern, output, exit_status)
        verdict = Verdict(
            scenario_id=scenario.scenario_id,
            case=scenario.case,
            mode=scenario.mode,
            state=ScenarioState.VERIFIED,
            passed=failure is None,
            failure=failure,
            message=message,
            expected_pattern=matcher.describe(pattern),
            output=output,
            exit_status=exit_status,
        )
        if verdict.passed:
            logger.info("Scenario passed", extra={"scenario": scenario.scenario_id})
        else:
            logger.warning(
                "Scenario failed",
                extra={"scenario": scenario.scenario_id, "failure": failure.value if failure else None},
            )
        return verdict

    def _advance(self, scenario: Scenario, state: ScenarioState, subject: Subject) -> ScenarioState:
        logger.debug(
            "Scenario state changed",
            extra={"scenario": scenario.scenario_id, "state": state.value, "pid": subject.pid},
        )
        return state

    def _verify(
        self,
        scenario: Scenario,
        pattern: re.Pattern[bytes],
        output: bytes,
        exit_status: ExitStatus,
    ) -> tuple[FailureKind | None, str]:
        """Return (failure kind, message); (None, "") means pass."""
        if not exit_status.killed_by(scenario.case.signo):
            return (
                FailureKind.UNEXPECTED_SURVIVAL,
                f"expected termination by {scenario.case.name}, subject {exit_status.describe()}",
            )

        found = matcher.matches(output, pattern)
        if not scenario.install_handler:
            if found:
                return (
                    FailureKind.PATTERN_MISMATCH,
                    f"report matching {matcher.describe(pattern)!r} present without a handler, captured: {output!r}",
                )
            return None, ""

        if not found:
            return (
                FailureKind.PATTERN_MISMATCH,
                f"expected output matching {matcher.describe(pattern)!r}, captured: {output!r}",
            )
        if scenario.stack_marker is not None and not matcher.contains_stack_frame(output, scenario.stack_marker):
            return (
                FailureKind.PATTERN_MISMATCH,
                f"expected stack frame {scenario.stack_marker!r}, captured: {output!r}",
            )
        return None, ""
