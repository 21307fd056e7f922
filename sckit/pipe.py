"""A pipe that can be watched by a poller like any socket.

On POSIX systems it is an ordinary ``os.pipe``. On Windows, where pipes
cannot be polled together with sockets, it is a connected pair of
loopback sockets.
"""

from __future__ import annotations

import errno
import os
import socket
from typing import Any

from .sock import SockEvent, SockFd

__all__ = ["PipeError", "SockPipe"]

_INVALID_FD = -1
_USE_SOCKETS = os.name == "nt"


class PipeError(OSError):
    """Raised when creating, closing, writing or reading a pipe fails."""


def _pipe_error(exc: OSError, what: str) -> PipeError:
    code = exc.errno if exc.errno is not None else errno.EIO
    return PipeError(code, f"{what} : {exc.strerror or os.strerror(code)}")


class SockPipe:
    """One-way byte channel; ``fdt`` refers to the read end for polling.

    ``type`` is a user tag stored in ``fdt.type``.
    """

    def __init__(self, type: int = 0) -> None:
        self.fdt = SockFd(type=type, op=SockEvent.NONE)
        self._socks: tuple[socket.socket, socket.socket] | None = None
        self._fds: tuple[int, int] | None = None

        if _USE_SOCKETS:
            try:
                reader, writer = socket.socketpair()
                writer.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as exc:
                raise _pipe_error(exc, "socketpair()") from exc
            self._socks = (reader, writer)
            self.fdt.fd = reader.fileno()
        else:
            try:
                self._fds = os.pipe()
            except OSError as exc:
                raise _pipe_error(exc, "pipe()") from exc
            self.fdt.fd = self._fds[0]

    @property
    def closed(self) -> bool:
        """True once the pipe has been closed."""
        return self._fds is None and self._socks is None

    def fileno(self) -> int:
        """Return the read end's descriptor, or -1 if the pipe is closed."""
        return self.fdt.fd

    def close(self) -> None:
        """Close both ends. Closing an already closed pipe does nothing.

        Both ends are released even if closing one of them fails; the last
        failure is then raised as :class:`PipeError`.
        """
        failure: PipeError | None = None

        if self._socks is not None:
            socks, self._socks = self._socks, None
            for sock in socks:
                try:
                    sock.close()
                except OSError as exc:
                    failure = _pipe_error(exc, "pipe close()")
        elif self._fds is not None:
            fds, self._fds = self._fds, None
            for fd in fds:
                try:
                    os.close(fd)
                except OSError as exc:
                    failure = _pipe_error(exc, "pipe close()")
        else:
            return

        self.fdt.fd = _INVALID_FD
        if failure is not None:
            raise failure

    def _closed_error(self) -> PipeError:
        return PipeError(errno.EBADF, f"pipe : {os.strerror(errno.EBADF)}")

    def write(self, data: bytes) -> int:
        """Write ``data`` to the pipe and return the number of bytes written."""
        try:
            if self._socks is not None:
                return self._socks[1].send(data)
            if self._fds is not None:
                return os.write(self._fds[1], data)
        except OSError as exc:
            raise _pipe_error(exc, "pipe write()") from exc
        raise self._closed_error()

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; fewer may come back than were asked for."""
        try:
            if self._socks is not None:
                return self._socks[0].recv(size)
            if self._fds is not None:
                return os.read(self._fds[0], size)
        except OSError as exc:
            raise _pipe_error(exc, "pipe read()") from exc
        raise self._closed_error()

    def __enter__(self) -> SockPipe:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()