"""Exception hierarchy for crash-sandbox.

All exceptions inherit from SandboxError base class.

Hierarchy:
    SandboxError (base)
    ├── SetupError                   ← scenario could not be set up
    │   ├── ResourceExhaustedError   ← pipe creation hit descriptor limits
    │   └── SpawnError               ← fork() failed
    ├── SubjectGoneError             ← signal target no longer exists
    ├── HarnessConfigError           ← invalid scenario/option combination
    └── DeathTestFailure             ← also an AssertionError
        ├── PatternMismatchError     ← captured output lacks the expected marker
        └── UnexpectedSurvivalError  ← subject did not die as expected

Output read before the writer flushed, or a signal delivered before the
handler was installed, has no exception of its own: it surfaces as a
PatternMismatchError.
"""

from __future__ import annotations

from typing import Any


class SandboxError(Exception):
    """Base exception for all harness errors with structured context.

    Attributes:
        message: Human-readable error message
        context: Dictionary of structured error context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# =============================================================================
# Setup Failures (fatal to the scenario, never retried)
# =============================================================================


class SetupError(SandboxError):
    """Scenario setup failed.

    Raised when the capture channel or the subject process cannot be
    created. Fatal to the scenario; the orchestrator records it and moves
    on to the next one.
    """


class ResourceExhaustedError(SetupError):
    """Capture channel could not be created.

    Raised when pipe() fails with EMFILE or ENFILE (per-process or
    system-wide descriptor limit reached).

    Attributes:
        errno: OS error number reported by pipe()
    """

    def __init__(self, message: str, errno: int, context: dict[str, Any] | None = None):
        ctx = context or {}
        ctx.update({"errno": errno})
        super().__init__(message, ctx)
        self.errno = errno


class SpawnError(SetupError):
    """Subject process could not be forked."""


class SubjectGoneError(SandboxError):
    """Signal target no longer exists.

    Raised when delivering a signal to a subject that already terminated
    or whose PID was recycled by another process.
    """


class HarnessConfigError(SandboxError):
    """Invalid harness configuration.

    Raised when a scenario combines options that cannot be honoured, such
    as a stack-frame check on a subject that never installs the handler.
    """


# =============================================================================
# Death-test assertion failures
# =============================================================================


class DeathTestFailure(SandboxError, AssertionError):
    """Base for death-test assertion failures.

    Inherits AssertionError so pytest reports these as test failures
    rather than errors.

    Attributes:
        output: Bytes captured from the subject
    """

    def __init__(self, message: str, output: bytes, context: dict[str, Any] | None = None):
        super().__init__(message, context)
        self.output = output


class PatternMismatchError(DeathTestFailure):
    """Captured output does not contain the expected pattern.

    The message carries both the expected pattern and the captured bytes
    to aid diagnosis.
    """

    def __init__(self, pattern: str, output: bytes, context: dict[str, Any] | None = None):
        super().__init__(
            f"expected output matching {pattern!r}, captured: {output!r}",
            output,
            context,
        )
        self.pattern = pattern


class UnexpectedSurvivalError(DeathTestFailure):
    """Subject did not terminate the way the test required.

    Distinct from PatternMismatchError: the handler or signal delivery
    malfunctioned, not the diagnostic text.
    """
