"""Logging for crash-sandbox, aware that every subject is a fork of the caller.

Library conventions:
- The ``crash_sandbox`` logger carries a NullHandler and nothing else until
  configure_logging() is called (the CLI does, library users need not)
- CRASH_SANDBOX_LOG_LEVEL sets the level at import time

CLI output format:
    WARNING [2026-02-25 10:02:54] crash_sandbox.sandbox - Subject force-killed during cleanup

configure_logging() routes records through a bounded queue to a listener
thread that echoes them with click.  The parent's scenario loop never blocks
on stderr; when the queue is full records are dropped.

Fork model:
    A subject is a fork() of the process that holds the queue handler, but
    the listener thread is not carried across fork().  Records a subject
    enqueued would never be written, and records reaching any other handler
    would land in the captured output under test.  An after-fork hook
    therefore detaches the queue handler in every child and raises the
    library logger above CRITICAL: subjects never log.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "crash_sandbox"

SILENCED_LEVEL: int = logging.CRITICAL + 1
"""Library level inside forked subjects; no record passes it."""

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = os.environ.get("CRASH_SANDBOX_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 1024


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr via click.echo, dimmed.

    Runs on the listener thread of the parent process only.
    """

    def __init__(self) -> None:
        super().__init__()
        self.formatter = logging.Formatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except BlockingIOError:
            pass  # stderr full, drop
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler owning its listener thread.

    Attributes:
        owner_pid: Process that started the listener; the handler is only
            usable there.
    """

    def __init__(self) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self.owner_pid = os.getpid()
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Same-process queue: no pickling needed."""
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        # The listener thread exists only in the process that started it.
        if os.getpid() == self.owner_pid:
            self._listener.stop()
        super().close()


def _silence_after_fork() -> None:
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    for handler in list(lib_logger.handlers):
        if isinstance(handler, _NonBlockingHandler):
            lib_logger.removeHandler(handler)
    lib_logger.setLevel(SILENCED_LEVEL)


os.register_at_fork(after_in_child=_silence_after_fork)


def get_logger(name: str) -> logging.Logger:
    """Logger for a crash_sandbox module (child of the library logger)."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Attach the non-blocking click handler (once) and set the level.

    Args:
        level: Log level (e.g. logging.DEBUG, "WARNING"). Overrides the env var.
        quiet: Only errors. Takes precedence over ``level``.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
