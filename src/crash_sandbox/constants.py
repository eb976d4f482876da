"""Constants for crash-sandbox timing, capture and report format."""

from typing import Final

# ============================================================================
# Capture
# ============================================================================

READ_BUFFER_SIZE: Final[int] = 1024
"""Bytes requested per read() while draining a subject's pipe."""

READY_SENTINEL: Final[bytes] = b"\x06\x00crash-sandbox:ready\x00\x06"
"""Token a subject writes once its handler is installed (readiness handshake).
Output written before readiness must not contain it verbatim."""

# ============================================================================
# Timing
# ============================================================================

DEFAULT_GRACE_DELAY_SECONDS: Final[float] = 1.0
"""Pause before external delivery so the subject can install its handler.
Coarse synchronisation, not an ordering guarantee."""

DEFAULT_SUBJECT_SLEEP_SECONDS: Final[float] = 10.0
"""How long an external-delivery subject waits for its signal before giving up."""

DEFAULT_ALARM_ON_FAILURE_SECONDS: Final[int] = 3
"""Watchdog armed by the reference handler while it writes its report."""

# ============================================================================
# Subject exit codes (only seen when the subject survives)
# ============================================================================

SUBJECT_RETURNED_EXIT_CODE: Final[int] = 0
"""Role behaviour returned without the process dying."""

SUBJECT_RAISED_EXIT_CODE: Final[int] = 1
"""Role behaviour raised a Python exception."""

# ============================================================================
# Diagnostic report format
# ============================================================================

REPORT_MARKER: Final[str] = "***"
"""Literal prefix of the report's first line."""

RECEIVED_AT: Final[str] = "received at time="
"""Literal text between the signal name and the timestamp."""

RUNNER_ENTRY_FRAME: Final[str] = "ScenarioRunner.run"
"""Qualified name of the per-scenario routine of the runner.  Every subject is
forked from inside it, whether the scenario runs alone or as part of a suite,
so it appears in every genuine stack the handler reports."""

PYTEST_ENTRY_FRAME: Final[str] = "pytest_runtest_call"
"""Top-level routine pytest uses to execute a test item."""
