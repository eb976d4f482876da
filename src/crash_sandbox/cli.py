"""Command-line interface for crash-sandbox.

Usage:
    crash-sandbox                         # Default suite: all signals self-raised + external abort
    crash-sandbox -s SIGABRT --mode all   # Abort in both modes
    crash-sandbox --no-install            # Negative run: no handler, no reports expected
    crash-sandbox --json | jq .
"""

from __future__ import annotations

import json
import logging
import sys
from typing import NoReturn

import click

from crash_sandbox import (
    HarnessSettings,
    Mode,
    ScenarioRunner,
    SuiteReport,
    Verdict,
    __version__,
    build_scenarios,
    default_scenarios,
)
from crash_sandbox._logging import configure_logging
from crash_sandbox.signals import signal_from_label

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_SCENARIO_FAILED = 1
EXIT_CLI_ERROR = 2

MODE_CHOICES: dict[str, tuple[Mode, ...]] = {
    "self-raise": (Mode.SELF_RAISE,),
    "external": (Mode.EXTERNAL,),
    "all": (Mode.SELF_RAISE, Mode.EXTERNAL),
}


def parse_signals(labels: tuple[str, ...]) -> list[int]:
    """Resolve -s/--signal values to catalog signal numbers.

    Raises:
        click.BadParameter: a label is not a catalog signal
    """
    signals: list[int] = []
    for label in labels:
        try:
            signo = signal_from_label(label)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="'-s' / '--signal'") from exc
        if signo not in signals:
            signals.append(signo)
    return signals


def format_verdict(verdict: Verdict) -> str:
    """One human-readable line per verdict, failure details indented below."""
    if verdict.passed:
        return click.style("PASS", fg="green") + f"  {verdict.scenario_id}"
    kind = verdict.failure.value if verdict.failure else "failed"
    return click.style("FAIL", fg="red", bold=True) + f"  {verdict.scenario_id} [{kind}]\n      {verdict.message}"


def format_report_json(report: SuiteReport) -> str:
    output = {
        "ok": report.ok,
        "passed": len(report.passed),
        "failed": len(report.failed),
        "verdicts": [
            {
                "scenario": v.scenario_id,
                "signal": v.case.name,
                "signo": v.case.signo,
                "mode": v.mode.value,
                "state": v.state.value,
                "passed": v.passed,
                "failure": v.failure.value if v.failure else None,
                "message": v.message,
                "expected_pattern": v.expected_pattern,
                "exit_status": v.exit_status.describe() if v.exit_status else None,
                "output": v.output_text(),
            }
            for v in report.verdicts
        ],
    }
    return json.dumps(output, indent=2)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-s",
    "--signal",
    "signal_labels",
    multiple=True,
    help="Signal to test: SIG_ABORT, SIGABRT or 6 (repeatable, default: all)",
)
@click.option(
    "--mode",
    type=click.Choice(["default", *MODE_CHOICES], case_sensitive=False),
    default="default",
    show_default=True,
    help="Delivery mode; 'default' self-raises every signal and also delivers abort externally",
)
@click.option("--no-install", is_flag=True, help="Do not install the handler (expect no reports)")
@click.option("--handshake", is_flag=True, help="Wait for a readiness token instead of the grace delay")
@click.option("--grace-delay", type=click.FloatRange(min=0), help="Seconds to wait before external delivery")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("-q", "--quiet", is_flag=True, help="Only print failing scenarios and harness errors")
@click.option("-v", "--verbose", is_flag=True, help="Log harness activity to stderr")
@click.version_option(__version__, "-V", "--version", prog_name="crash-sandbox")
def main(
    signal_labels: tuple[str, ...],
    mode: str,
    no_install: bool,
    handshake: bool,
    grace_delay: float | None,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> NoReturn:
    """Verify the failure-signal handler in isolated subject processes.

    Every scenario forks a subject, installs the handler, raises or delivers
    a fatal signal, and checks that the captured output contains
    "*** <SIGNAL> received at time=".
    """
    if verbose:
        configure_logging(level=logging.DEBUG)
    elif quiet:
        configure_logging(quiet=True)

    overrides: dict[str, object] = {}
    if no_install:
        overrides["install_handler"] = False
    if handshake:
        overrides["readiness_handshake"] = True
    if grace_delay is not None:
        overrides["grace_delay_seconds"] = grace_delay
    settings = HarnessSettings(**overrides)  # type: ignore[arg-type]

    try:
        signals = parse_signals(signal_labels)
    except click.BadParameter as exc:
        raise click.UsageError(str(exc)) from exc

    if mode == "default":
        scenarios = [
            s for s in default_scenarios(install_handler=settings.install_handler) if not signals or s.case.signo in signals
        ]
    else:
        scenarios = build_scenarios(
            signals=signals or None,
            modes=MODE_CHOICES[mode],
            install_handler=settings.install_handler,
        )
    if not scenarios:
        raise click.UsageError("No scenarios selected.")

    report = ScenarioRunner(settings).run_suite(scenarios)

    if json_output:
        click.echo(format_report_json(report))
    else:
        for verdict in report.verdicts:
            if verdict.passed and quiet:
                continue
            click.echo(format_verdict(verdict))
        if not quiet:
            click.echo(f"{len(report.passed)} passed, {len(report.failed)} failed", err=True)

    sys.exit(EXIT_SUCCESS if report.ok else EXIT_SCENARIO_FAILED)


if __name__ == "__main__":
    main()
