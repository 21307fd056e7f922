"""Shutdown and crash signal handling.

A shutdown signal (SIGINT, SIGTERM) writes one byte to a shutdown file
descriptor so the application can notice it in its event loop and stop
cleanly. A second shutdown signal before the application exits forces an
immediate exit. Fatal signals produce a crash report through
:mod:`faulthandler`.
"""

from __future__ import annotations

import faulthandler
import os
import signal
from types import FrameType

from .sigformat import signal_log

__all__ = ["SignalHandler", "signal_name", "init_signals"]

_STDOUT_FD = 1
_STDERR_FD = 2

_NAMES = {
    getattr(signal, name): name
    for name in ("SIGINT", "SIGTERM", "SIGSEGV", "SIGABRT", "SIGBUS", "SIGFPE", "SIGILL")
    if hasattr(signal, name)
}

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_IGNORED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGHUP", "SIGPIPE") if hasattr(signal, name)
)


def signal_name(signum: int) -> str:
    """Return the name of a shutdown or fatal signal, or "unknown signal"."""
    return _NAMES.get(signum, "unknown signal")


class SignalHandler:
    """Process-wide shutdown and crash handling.

    ``shutdown_fd`` receives one byte on the first shutdown signal; if it is
    None the process exits at once. ``log_fd`` receives log lines; if None,
    shutdown messages go to standard output and crash reports to standard
    error.
    """

    def __init__(self, shutdown_fd: int | None = None, log_fd: int | None = None) -> None:
        self.shutdown_fd = shutdown_fd
        self.log_fd = log_fd
        self.shutdown_requested = False

    def install(self) -> None:
        """Hook shutdown and fatal signals; SIGHUP and SIGPIPE are ignored.

        Must be called from the main thread. Raises ValueError or OSError if
        a handler cannot be set.
        """
        for signum in _IGNORED_SIGNALS:
            signal.signal(signum, signal.SIG_IGN)
        for signum in _SHUTDOWN_SIGNALS:
            signal.signal(signum, self.handle_shutdown)

        fatal_fd = self.log_fd if self.log_fd is not None else _STDERR_FD
        faulthandler.enable(file=fatal_fd, all_threads=True)

    def handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        """Signal handler for shutdown signals."""
        fd = self.log_fd if self.log_fd is not None else _STDOUT_FD
        name = signal_name(signum) if signum in _SHUTDOWN_SIGNALS else "Shutdown signal"

        signal_log(fd, "Recv : %s, (%d) \n", name, int(signum))

        if self.shutdown_requested:
            signal_log(fd, "Forcing shut down! \n")
            os._exit(1)
            return

        self.shutdown_requested = True

        if self.shutdown_fd is None:
            signal_log(fd, "No shutdown handler, shutting down! \n")
            os._exit(0)
            return

        signal_log(fd, "Sending shutdown command. \n")
        try:
            written = os.write(self.shutdown_fd, b"\x01")
        except OSError:
            written = -1
        if written != 1:
            signal_log(
                fd, "Failed to send shutdown command, shutting down immediately! \n"
            )
            os._exit(1)
            return


def init_signals() -> SignalHandler:
    """Create a handler with default settings, install it and return it."""
    handler = SignalHandler()
    handler.install()
    return handler