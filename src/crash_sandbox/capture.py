"""Capture of a subject's standard streams through a byte pipe.

- open_channel: create the pipe (reader stays with the parent, writer goes to the subject)
- redirect_process_streams: point fds 1 and 2 of the calling process at the writer
- drain: read until end-of-stream
- await_sentinel: read until the subject writes the readiness token

End-of-stream is only observed once every writer descriptor is closed, so the
parent must close its copy of the writer before draining.  The subject's copy
closes when it dies.
"""

from __future__ import annotations

import contextlib
import errno
import io
import os
import sys
from dataclasses import dataclass

from crash_sandbox import constants
from crash_sandbox._logging import get_logger
from crash_sandbox.exceptions import ResourceExhaustedError, SetupError

logger = get_logger(__name__)

_DESCRIPTOR_LIMIT_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE})


@dataclass(frozen=True)
class CaptureChannel:
    """Both ends of a unidirectional byte pipe."""

    reader_fd: int
    writer_fd: int


def open_channel() -> CaptureChannel:
    """Create the capture pipe.

    Raises:
        ResourceExhaustedError: descriptor limit reached
        SetupError: any other pipe() failure
    """
    try:
        reader_fd, writer_fd = os.pipe()
    except OSError as e:
        if e.errno in _DESCRIPTOR_LIMIT_ERRNOS:
            raise ResourceExhaustedError(
                f"Cannot create capture pipe: {e.strerror}",
                errno=e.errno,
            ) from e
        raise SetupError(f"Cannot create capture pipe: {e}", context={"errno": e.errno}) from e

    logger.debug("Capture channel opened", extra={"reader_fd": reader_fd, "writer_fd": writer_fd})
    return CaptureChannel(reader_fd=reader_fd, writer_fd=writer_fd)


def redirect_process_streams(writer_fd: int) -> None:
    """Rebind stdout and stderr of the calling process to ``writer_fd``.

    Both the descriptors (for native writers and the signal handler) and the
    Python-level ``sys.stdout``/``sys.stderr`` objects (which a test runner
    may have swapped for its own capture) are redirected.  After this call
    nothing the process prints reaches the terminal.
    """
    for stream in (sys.stdout, sys.stderr):
        if stream is not None:
            with contextlib.suppress(OSError, ValueError):
                stream.flush()

    os.dup2(writer_fd, 1)
    os.dup2(writer_fd, 2)
    if writer_fd not in (1, 2):
        os.close(writer_fd)

    sys.stdout = io.TextIOWrapper(io.FileIO(1, "w", closefd=False), line_buffering=True)
    sys.stderr = io.TextIOWrapper(io.FileIO(2, "w", closefd=False), line_buffering=True, errors="backslashreplace")


def drain(reader_fd: int, buffer_size: int = constants.READ_BUFFER_SIZE) -> bytes:
    """Read from ``reader_fd`` until a zero-length read.

    Blocks until every writer descriptor referencing the pipe is closed.
    """
    chunks: list[bytes] = []
    while True:
        chunk = os.read(reader_fd, buffer_size)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def await_sentinel(reader_fd: int, sentinel: bytes = constants.READY_SENTINEL) -> bytes:
    """Read one byte at a time until the full ``sentinel`` token has arrived.

    Reading byte-wise never consumes output written after the token.  Bytes
    that merely share a prefix with the token stay part of the output; only
    the complete token is stripped.

    Returns:
        Bytes the subject wrote before the token (part of its captured output)

    Raises:
        SetupError: end-of-stream reached before the token
    """
    seen = bytearray()
    while True:
        byte = os.read(reader_fd, 1)
        if not byte:
            raise SetupError(
                "Subject closed its output before signalling readiness",
                context={"captured": bytes(seen)},
            )
        seen += byte
        if seen.endswith(sentinel):
            return bytes(seen[: -len(sentinel)])
