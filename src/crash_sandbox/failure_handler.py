"""Reference failure-signal handler.

Installs a handler for every signal in the catalog.  On delivery it writes a
diagnostic report to the process's error stream, then restores the default
disposition and re-raises so the process still dies by the original signal:

    *** SIG_ABORT received at time=1561409570 ***
    PC: @ /usr/lib/python3.12/signal.py:58  raise_signal
        @ /src/crash_sandbox/subject.py:41  install_and_raise
        @ ...

The harness only relies on the first line and on the routine names in the
stack; everything else is informational.  Python-level handlers run between
bytecodes, so this reports signals raised or delivered to the process, not
faults inside native code.
"""

from __future__ import annotations

import contextlib
import os
import signal
import sys
import time
from collections.abc import Iterator
from types import FrameType
from typing import Any

from crash_sandbox import constants
from crash_sandbox.config import FailureSignalHandlerOptions
from crash_sandbox.signals import FAILURE_SIGNALS, signal_param_to_string

_installed_options: FailureSignalHandlerOptions | None = None
_previous_handlers: dict[int, Any] = {}
_handling_signal: int | None = None


def install_failure_signal_handler(options: FailureSignalHandlerOptions | None = None) -> None:
    """Install the report handler for every catalog signal.

    Idempotent: calling it again only replaces the options.  The handler
    that was active before the first call stays recorded as the "previous"
    handler, so reinstalling never chains the handler to itself.

    Must run on the main thread (signal.signal() restriction).
    """
    global _installed_options

    _installed_options = options or FailureSignalHandlerOptions()
    for signo in FAILURE_SIGNALS:
        current = signal.getsignal(signo)
        if current is not _failure_signal_handler:
            _previous_handlers[signo] = current
            signal.signal(signo, _failure_signal_handler)


def uninstall_failure_signal_handler() -> None:
    """Restore the handlers recorded by the first install."""
    global _installed_options

    for signo, previous in _previous_handlers.items():
        # None means the previous handler was not installed from Python
        signal.signal(signo, previous if previous is not None else signal.SIG_DFL)
    _previous_handlers.clear()
    _installed_options = None


def is_installed() -> bool:
    return _installed_options is not None


def _failure_signal_handler(signo: int, frame: FrameType | None) -> None:
    global _handling_signal

    if _handling_signal is not None:
        # Second failure while reporting the first: skip the report.
        _raise_to_default_handler(signo)
        return
    _handling_signal = signo

    options = _installed_options or FailureSignalHandlerOptions()
    if options.alarm_on_failure_seconds > 0:
        signal.alarm(options.alarm_on_failure_seconds)

    report = format_failure_report(signo, frame, symbolize=options.symbolize_stacktrace)
    if options.writerfn is not None:
        options.writerfn(report)
    else:
        _write_to_stderr(report)

    if options.call_previous_handler:
        previous = _previous_handlers.get(signo)
        if callable(previous):
            previous(signo, frame)

    _raise_to_default_handler(signo)


def format_failure_report(signo: int, frame: FrameType | None, *, symbolize: bool = True) -> str:
    """Build the report text: header line, then one line per frame, innermost first."""
    header = f"{constants.REPORT_MARKER} {signal_param_to_string(signo)} {constants.RECEIVED_AT}{int(time.time())} ***"
    lines = [header]
    for depth, current in enumerate(_walk_stack(frame)):
        prefix = "PC: @ " if depth == 0 else "    @ "
        lines.append(prefix + _describe_frame(current, symbolize))
    return "\n".join(lines) + "\n"


def _walk_stack(frame: FrameType | None) -> Iterator[FrameType]:
    while frame is not None:
        yield frame
        frame = frame.f_back


def _describe_frame(frame: FrameType, symbolize: bool) -> str:
    code = frame.f_code
    if not symbolize:
        return f"0x{id(code):x}  (unknown)"
    return f"{code.co_filename}:{frame.f_lineno}  {code.co_qualname}"


def _write_to_stderr(report: str) -> None:
    # Text already buffered on sys.stderr belongs before the report.
    with contextlib.suppress(OSError, RuntimeError, ValueError):
        sys.stderr.flush()
    data = report.encode(errors="replace")
    while data:
        written = os.write(2, data)
        data = data[written:]


def _raise_to_default_handler(signo: int) -> None:
    signal.signal(signo, signal.SIG_DFL)
    signal.raise_signal(signo)
