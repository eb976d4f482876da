"""Unit tests for expectation patterns and output checks."""

import signal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis.strategies import binary, integers, sampled_from

from crash_sandbox import matcher
from crash_sandbox.signals import FAILURE_SIGNALS, SignalCase


class TestBuildPattern:
    @pytest.mark.parametrize("signo", FAILURE_SIGNALS, ids=lambda s: SignalCase.of(s).name)
    def test_pattern_per_signal(self, signo: int) -> None:
        """Each case maps to one pattern naming that signal only."""
        case = SignalCase.of(signo)
        pattern = matcher.build_pattern(case)
        line = f"*** {case.name} received at time=1561409570 ***\n".encode()
        assert matcher.matches(line, pattern)

        for other in FAILURE_SIGNALS:
            if other != signo:
                other_line = f"*** {SignalCase.of(other).name} received at time=1 ***".encode()
                assert not matcher.matches(other_line, pattern)

    def test_marker_is_literal(self) -> None:
        """The asterisks are matched literally, not as regex quantifiers."""
        pattern = matcher.build_pattern(SignalCase.of(signal.SIGABRT))
        assert not matcher.matches(b"SIG_ABORT received at time=1", pattern)
        assert not matcher.matches(b"** SIG_ABORT received at time=1", pattern)

    def test_timestamp_value_unconstrained(self) -> None:
        """Only the prefix is required; any or no timestamp value matches."""
        pattern = matcher.build_pattern(SignalCase.of(signal.SIGTERM))
        assert matcher.matches(b"*** SIG_TERM received at time=", pattern)
        assert matcher.matches(b"*** SIG_TERM received at time=99999999999 on cpu 3 ***", pattern)

    def test_describe_is_readable(self) -> None:
        pattern = matcher.build_pattern(SignalCase.of(signal.SIGABRT))
        assert "SIG_ABORT" in matcher.describe(pattern)
        assert "received at time=" in matcher.describe(pattern).replace("\\", "")


class TestMatches:
    def test_containment_not_equality(self) -> None:
        """The report line may be surrounded by arbitrary output."""
        pattern = matcher.build_pattern(SignalCase.of(signal.SIGSEGV))
        output = b"noise before\n*** SIG_SEGV received at time=42 ***\nPC: @ f.py:1  g\nnoise after"
        assert matcher.matches(output, pattern)

    def test_empty_output(self) -> None:
        assert not matcher.matches(b"", matcher.build_pattern(SignalCase.of(signal.SIGILL)))

    def test_binary_garbage_tolerated(self) -> None:
        pattern = matcher.build_pattern(SignalCase.of(signal.SIGFPE))
        output = b"\xff\xfe\x00*** SIG_FPE received at time=7 ***\x80"
        assert matcher.matches(output, pattern)


class TestContainsStackFrame:
    def test_marker_present(self) -> None:
        output = b"*** SIG_ABORT received at time=1 ***\n    @ runner.py:10  ScenarioRunner.run_suite\n"
        assert matcher.contains_stack_frame(output, "run_suite")

    def test_marker_absent_from_stub_report(self) -> None:
        """A header without frames does not prove a stack was walked."""
        assert not matcher.contains_stack_frame(b"*** SIG_ABORT received at time=1 ***\n", "run_suite")


class TestMatcherProperties:
    @given(
        signo=sampled_from(FAILURE_SIGNALS),
        before=binary(max_size=200),
        after=binary(max_size=200),
        timestamp=integers(min_value=0, max_value=2**40),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_report_found_anywhere(self, signo: int, before: bytes, after: bytes, timestamp: int) -> None:
        """Property: the report line matches whatever bytes surround it."""
        case = SignalCase.of(signo)
        output = before + f"*** {case.name} received at time={timestamp} ***".encode() + after
        assert matcher.matches(output, matcher.build_pattern(case))

    @given(noise=binary(max_size=300).filter(lambda b: b"received at time=" not in b))
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_no_report_no_match(self, noise: bytes) -> None:
        """Property: output without the literal prefix never matches any signal."""
        for signo in FAILURE_SIGNALS:
            assert not matcher.matches(noise, matcher.build_pattern(SignalCase.of(signo)))
