"""Process isolation for subjects that are expected to die.

The subject is a fork()ed copy of the caller.  It redirects its standard
streams into a capture pipe, resets inherited fatal-signal dispositions and
runs its role behaviour; it never returns into the caller's stack.  The
parent keeps the pipe's reader and a PID-reuse safe psutil handle.

Typical parent-side sequence:

    subject = sandbox.spawn(behaviour)
    sandbox.deliver_signal(subject, signal.SIGABRT)   # external mode only
    output = sandbox.capture(subject)                 # drain BEFORE waitpid
    status = sandbox.wait_for_exit(subject)

Draining before reaping matters: a subject that fills the 64KB pipe buffer
blocks on write() and never exits if the parent is stuck in waitpid().
"""

from __future__ import annotations

import contextlib
import faulthandler
import os
import resource
import signal
import sys
import time
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field

import psutil

from crash_sandbox import capture, constants
from crash_sandbox._logging import get_logger
from crash_sandbox.exceptions import SpawnError, SubjectGoneError
from crash_sandbox.models import ExitStatus
from crash_sandbox.settings import HarnessSettings
from crash_sandbox.signals import FAILURE_SIGNALS

logger = get_logger(__name__)

RoleBehavior = Callable[[], object]


@dataclass
class Subject:
    """Parent-side handle on one isolated subject process.

    Attributes:
        pid: Subject process ID
        reader_fd: Read end of the capture pipe (closed after capture)
        psutil_proc: PID-reuse safe handle, None if the subject vanished before wrapping
        preamble: Bytes read while waiting for the readiness sentinel
        output: Captured bytes, set once capture() has drained the pipe
        exit_status: Set once wait_for_exit() has reaped the subject
    """

    pid: int
    reader_fd: int
    psutil_proc: psutil.Process | None = None
    preamble: bytes = b""
    output: bytes | None = None
    exit_status: ExitStatus | None = None
    _reader_open: bool = field(default=True, repr=False)

    @property
    def reaped(self) -> bool:
        return self.exit_status is not None

    def close_reader(self) -> None:
        if self._reader_open:
            os.close(self.reader_fd)
            self._reader_open = False


class ProcessSandbox:
    """Spawns subjects and controls them from the parent side."""

    def __init__(self, settings: HarnessSettings | None = None) -> None:
        self.settings = settings or HarnessSettings()

    def spawn(self, role_behavior: RoleBehavior) -> Subject:
        """Fork a subject that runs ``role_behavior`` with captured streams.

        Raises:
            ResourceExhaustedError: capture pipe could not be created
            SetupError: capture pipe failed for another reason
            SpawnError: fork() failed
        """
        channel = capture.open_channel()

        # Buffered parent output would otherwise be written twice.
        for stream in (sys.stdout, sys.stderr):
            if stream is not None:
                with contextlib.suppress(OSError, ValueError):
                    stream.flush()

        try:
            pid = os.fork()
        except OSError as e:
            os.close(channel.reader_fd)
            os.close(channel.writer_fd)
            raise SpawnError(f"fork() failed: {e}", context={"errno": e.errno}) from e

        if pid == 0:
            _run_subject(channel, role_behavior, disable_core_dumps=self.settings.disable_core_dumps)

        os.close(channel.writer_fd)

        psutil_proc = None
        with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
            psutil_proc = psutil.Process(pid)

        logger.debug("Subject spawned", extra={"pid": pid})
        return Subject(pid=pid, reader_fd=channel.reader_fd, psutil_proc=psutil_proc)

    def wait_until_ready(self, subject: Subject) -> None:
        """Block until the subject writes the readiness sentinel.

        Raises:
            SetupError: subject closed its output without signalling readiness
        """
        subject.preamble += capture.await_sentinel(subject.reader_fd)
        logger.debug("Subject ready", extra={"pid": subject.pid})

    def deliver_signal(self, subject: Subject, signo: int, *, grace_delay: float | None = None) -> None:
        """Send ``signo`` to the subject from outside.

        Waits ``grace_delay`` seconds first (settings default) so the subject
        can finish installing its handler.  This is a timing assumption, not
        an ordering guarantee; enable ``readiness_handshake`` for a real one.

        Raises:
            SubjectGoneError: subject already reaped or PID recycled
        """
        if subject.reaped:
            raise SubjectGoneError("Subject already reaped", context={"pid": subject.pid})

        delay = self.settings.grace_delay_seconds if grace_delay is None else grace_delay
        if delay > 0:
            time.sleep(delay)

        if subject.psutil_proc is None:
            raise SubjectGoneError("Subject exited before it could be signalled", context={"pid": subject.pid})
        try:
            subject.psutil_proc.send_signal(signo)
        except psutil.NoSuchProcess as e:
            raise SubjectGoneError(
                "Subject exited before it could be signalled",
                context={"pid": subject.pid, "signal": signo},
            ) from e

        logger.debug("Signal delivered", extra={"pid": subject.pid, "signal": signo, "grace_delay": delay})

    def capture(self, subject: Subject) -> bytes:
        """Drain the subject's pipe to end-of-stream and close it."""
        if subject.output is not None:
            return subject.output
        try:
            output = subject.preamble + capture.drain(subject.reader_fd, self.settings.read_buffer_size)
        finally:
            subject.close_reader()
        subject.output = output
        logger.debug("Subject output captured", extra={"pid": subject.pid, "bytes": len(output)})
        return output

    def wait_for_exit(self, subject: Subject) -> ExitStatus:
        """Block until the subject terminates and decode how it ended.

        Raises:
            SubjectGoneError: the subject is not a child of this process anymore
        """
        if subject.exit_status is not None:
            return subject.exit_status
        try:
            _, status = os.waitpid(subject.pid, 0)
        except ChildProcessError as e:
            raise SubjectGoneError("Subject already reaped elsewhere", context={"pid": subject.pid}) from e

        subject.exit_status = ExitStatus.from_wait_status(status)
        logger.debug(
            "Subject reaped",
            extra={"pid": subject.pid, "exit_status": subject.exit_status.describe()},
        )
        return subject.exit_status

    def run(self, subject: Subject) -> tuple[bytes, ExitStatus]:
        """Capture, then reap. Returns (output, exit status)."""
        output = self.capture(subject)
        return output, self.wait_for_exit(subject)

    def cleanup(self, subject: Subject) -> None:
        """Release the subject after an aborted scenario.

        A subject that already exited is only reaped; a live one is SIGKILLed
        first.  Safe to call on a subject that was already captured and reaped.
        """
        subject.close_reader()
        if subject.reaped:
            return

        try:
            pid, status = os.waitpid(subject.pid, os.WNOHANG)
        except ChildProcessError:
            logger.debug("Subject already reaped elsewhere", extra={"pid": subject.pid})
            return
        if pid:
            subject.exit_status = ExitStatus.from_wait_status(status)
            logger.debug("Subject had already exited", extra={"pid": subject.pid})
            return

        killed = False
        with contextlib.suppress(psutil.NoSuchProcess, ProcessLookupError):
            if subject.psutil_proc is not None:
                subject.psutil_proc.kill()
            else:
                # Unreaped child: its PID cannot have been recycled yet.
                os.kill(subject.pid, signal.SIGKILL)
            killed = True
        with contextlib.suppress(ChildProcessError):
            _, status = os.waitpid(subject.pid, 0)
            subject.exit_status = ExitStatus.from_wait_status(status)
        if killed:
            logger.warning("Subject force-killed during cleanup", extra={"pid": subject.pid})


def _run_subject(channel: capture.CaptureChannel, role_behavior: RoleBehavior, *, disable_core_dumps: bool) -> None:
    """Child side of spawn(). Never returns."""
    status = constants.SUBJECT_RAISED_EXIT_CODE
    try:
        os.close(channel.reader_fd)
        capture.redirect_process_streams(channel.writer_fd)
        _reset_failure_dispositions()
        if disable_core_dumps:
            _disable_core_dumps()
        role_behavior()
        status = constants.SUBJECT_RETURNED_EXIT_CODE
    except BaseException:  # noqa: BLE001 - the subject must not unwind into the parent's stack
        traceback.print_exc()
    finally:
        for stream in (sys.stdout, sys.stderr):
            if stream is not None:
                with contextlib.suppress(OSError, ValueError):
                    stream.flush()
        os._exit(status)


def _reset_failure_dispositions() -> None:
    """Give the subject default dispositions for every catalog signal.

    A test runner may have enabled faulthandler or installed its own
    handlers; the subject must start as a fresh process would.
    """
    if faulthandler.is_enabled():
        faulthandler.disable()
    for signo in FAILURE_SIGNALS:
        signal.signal(signo, signal.SIG_DFL)
    signal.pthread_sigmask(signal.SIG_UNBLOCK, FAILURE_SIGNALS)


def _disable_core_dumps() -> None:
    _, hard = resource.getrlimit(resource.RLIMIT_CORE)
    resource.setrlimit(resource.RLIMIT_CORE, (0, hard))
