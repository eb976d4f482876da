"""Tests for the expect_death assertion."""

import re
import signal
import sys

import pytest

from crash_sandbox.death_test import expect_death
from crash_sandbox.exceptions import DeathTestFailure, PatternMismatchError, UnexpectedSurvivalError
from crash_sandbox.failure_handler import install_failure_signal_handler
from crash_sandbox.settings import HarnessSettings

ABORT_REPORT = rb"\*\*\* SIG_ABORT received at time="


def _abort_with_handler() -> None:
    install_failure_signal_handler()
    signal.raise_signal(signal.SIGABRT)


class TestExpectDeath:
    def test_passes_and_returns_output(self, harness_settings: HarnessSettings) -> None:
        output = expect_death(_abort_with_handler, ABORT_REPORT, signo=signal.SIGABRT, settings=harness_settings)
        assert b"_abort_with_handler" in output

    @pytest.mark.parametrize(
        "pattern",
        [
            r"\*\*\* SIG_ABORT received at time=",
            re.compile(r"SIG_ABORT received at time=\d+"),
            re.compile(rb"SIG_ABORT"),
        ],
        ids=["str", "str-pattern", "bytes-pattern"],
    )
    def test_pattern_forms(self, pattern: str | re.Pattern[str] | re.Pattern[bytes]) -> None:
        expect_death(_abort_with_handler, pattern, signo=signal.SIGABRT)

    def test_any_death_accepted_without_signo(self) -> None:
        """A non-zero exit counts as death when no signal is required."""

        def fail() -> None:
            print("giving up", file=sys.stderr)
            raise SystemExit(3)

        expect_death(fail, rb"giving up")

    def test_wrong_signal_is_survival(self) -> None:
        with pytest.raises(UnexpectedSurvivalError, match="signaled by SIGABRT"):
            expect_death(_abort_with_handler, ABORT_REPORT, signo=signal.SIGTERM)

    def test_clean_exit_is_survival(self) -> None:
        with pytest.raises(UnexpectedSurvivalError, match="exited with code 0") as exc_info:
            expect_death(lambda: print("still here"), rb"still here")
        assert exc_info.value.output == b"still here\n"

    def test_mismatch_reports_pattern_and_output(self) -> None:
        with pytest.raises(PatternMismatchError) as exc_info:
            expect_death(_abort_with_handler, rb"SIG_SEGV received", signo=signal.SIGABRT)

        error = exc_info.value
        assert error.pattern == "SIG_SEGV received"
        assert b"SIG_ABORT received at time=" in error.output
        assert "SIG_SEGV received" in str(error)
        assert "SIG_ABORT received at time=" in str(error)

    def test_failures_are_assertion_errors(self) -> None:
        """pytest reports death-test failures as failures, not errors."""
        with pytest.raises(AssertionError):
            expect_death(lambda: None, rb"anything")
        assert issubclass(DeathTestFailure, AssertionError)
