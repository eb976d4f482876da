"""Catalog of the fatal signals the harness exercises.

The set is closed: it is the contract surface with the handler under test,
not a list of every signal that can kill a process.
"""

from __future__ import annotations

import signal
from dataclasses import dataclass
from typing import Final

FAILURE_SIGNALS: Final[tuple[int, ...]] = (
    signal.SIGSEGV,
    signal.SIGILL,
    signal.SIGFPE,
    signal.SIGABRT,
    signal.SIGTERM,
)
"""Signals under test, in the order scenarios are generated."""

_CANONICAL_NAMES: Final[dict[int, str]] = {
    signal.SIGSEGV: "SIG_SEGV",
    signal.SIGILL: "SIG_ILL",
    signal.SIGFPE: "SIG_FPE",
    signal.SIGABRT: "SIG_ABORT",
    signal.SIGTERM: "SIG_TERM",
}


def failure_signal_to_string(signo: int) -> str:
    """Return the label the handler prints for ``signo``, or "" if unknown."""
    return _CANONICAL_NAMES.get(signo, "")


def signal_param_to_string(signo: int) -> str:
    """Return the canonical label, falling back to the decimal signal number.

    Used for scenario ids and the ``name`` of a SignalCase.
    """
    return failure_signal_to_string(signo) or str(signo)


def signal_from_label(label: str) -> int:
    """Resolve a canonical label, a ``SIGxxx`` name or a number to a catalog signal.

    Raises:
        ValueError: label does not name a signal in the catalog
    """
    text = label.strip().upper()
    for signo, name in _CANONICAL_NAMES.items():
        if text in (name, signal.Signals(signo).name):
            return signo
    if text.isdigit() and int(text) in _CANONICAL_NAMES:
        return int(text)
    raise ValueError(f"Not a failure signal: {label!r}")


@dataclass(frozen=True)
class SignalCase:
    """One signal under test and its canonical diagnostic name."""

    signo: int
    name: str

    @classmethod
    def of(cls, signo: int) -> SignalCase:
        return cls(signo=signo, name=signal_param_to_string(signo))

    def __str__(self) -> str:
        return self.name


def failure_cases() -> frozenset[SignalCase]:
    """All catalog signals as SignalCases."""
    return frozenset(SignalCase.of(signo) for signo in FAILURE_SIGNALS)
