"""Expectations derived from a SignalCase and checks against captured output.

The report is one line among arbitrary surrounding output, so every check is
containment, never whole-buffer equality.  The timestamp is wall-clock and
non-deterministic: only the ``received at time=`` prefix is required.
"""

from __future__ import annotations

import re

from crash_sandbox import constants
from crash_sandbox.signals import SignalCase


def build_pattern(case: SignalCase) -> re.Pattern[bytes]:
    """Pattern requiring ``*** <name> received at time=`` for ``case``."""
    text = f"{re.escape(constants.REPORT_MARKER)} {re.escape(case.name)} {re.escape(constants.RECEIVED_AT)}"
    return re.compile(text.encode())


def matches(output: bytes, pattern: re.Pattern[bytes]) -> bool:
    return pattern.search(output) is not None


def contains_stack_frame(output: bytes, marker: str) -> bool:
    """True when the literal routine name ``marker`` appears in ``output``.

    Proves a genuine call stack was walked rather than an empty or stub
    report.
    """
    return marker.encode() in output


def describe(pattern: re.Pattern[bytes]) -> str:
    """Readable form of a pattern for failure messages."""
    return pattern.pattern.decode(errors="replace")
