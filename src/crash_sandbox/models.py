"""Data models for crash-sandbox."""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from crash_sandbox.signals import SignalCase


class Mode(str, Enum):
    """How the fatal signal reaches the subject."""

    SELF_RAISE = "self-raise"
    EXTERNAL = "external"


class ScenarioState(str, Enum):
    """Per-scenario progress. VERIFIED and ERRORED are terminal."""

    PENDING = "pending"
    SPAWNED = "spawned"
    CAPTURING = "capturing"
    SIGNALED = "signaled"
    REAPED = "reaped"
    VERIFIED = "verified"
    ERRORED = "errored"


class FailureKind(str, Enum):
    """Why a scenario failed."""

    SETUP_FAILURE = "setup-failure"
    PATTERN_MISMATCH = "pattern-mismatch"
    UNEXPECTED_SURVIVAL = "unexpected-survival"


@dataclass(frozen=True)
class ExitStatus:
    """Decoded waitpid() status of a reaped subject."""

    raw: int
    signaled: bool
    term_signal: int | None
    exit_code: int | None

    @classmethod
    def from_wait_status(cls, status: int) -> ExitStatus:
        if os.WIFSIGNALED(status):
            return cls(raw=status, signaled=True, term_signal=os.WTERMSIG(status), exit_code=None)
        return cls(raw=status, signaled=False, term_signal=None, exit_code=os.WEXITSTATUS(status))

    def killed_by(self, signo: int) -> bool:
        return self.signaled and self.term_signal == signo

    def describe(self) -> str:
        if self.signaled and self.term_signal is not None:
            try:
                name = signal.Signals(self.term_signal).name
            except ValueError:
                name = str(self.term_signal)
            return f"signaled by {name}"
        return f"exited with code {self.exit_code}"


class Verdict(BaseModel):
    """Outcome of one scenario. Exactly one per scenario, never partial."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    scenario_id: str
    case: SignalCase
    mode: Mode
    state: ScenarioState
    passed: bool
    failure: FailureKind | None = None
    message: str = ""
    expected_pattern: str = ""
    output: bytes = Field(default=b"", description="Bytes captured from the subject")
    exit_status: ExitStatus | None = None

    def output_text(self) -> str:
        return self.output.decode(errors="replace")


class SuiteReport(BaseModel):
    """Verdicts from a suite run, in execution order."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    verdicts: list[Verdict] = Field(default_factory=list)

    @property
    def passed(self) -> list[Verdict]:
        return [v for v in self.verdicts if v.passed]

    @property
    def failed(self) -> list[Verdict]:
        return [v for v in self.verdicts if not v.passed]

    @property
    def ok(self) -> bool:
        return not self.failed
