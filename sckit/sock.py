"""TCP and Unix domain stream sockets with explicit blocking control.

A :class:`Sock` wraps one stream socket: it can listen and accept, or
connect to a remote end. Socket errors are raised as :class:`SockError`.
Operations that would block on a non-blocking socket raise
:class:`BlockingIOError`.
"""

from __future__ import annotations

import enum
import errno
import os
import socket
import struct
from dataclasses import dataclass
from typing import Any

__all__ = [
    "SockEvent",
    "SockFamily",
    "SockError",
    "SockFd",
    "Sock",
    "startup",
    "cleanup",
    "notify_systemd",
]

_INVALID_FD = -1
_LISTEN_BACKLOG = 4096
_UNIX_PATH_MAX = 108
_MSG_NOSIGNAL = getattr(socket, "MSG_NOSIGNAL", 0)
_IN_PROGRESS = {errno.EINPROGRESS, errno.EAGAIN, errno.EWOULDBLOCK}


class SockEvent(enum.IntFlag):
    """Readiness events a poller can watch for."""

    NONE = 0
    READ = 1
    WRITE = 2
    EDGE = 4


class SockFamily(enum.IntEnum):
    """Address families a socket can use."""

    INET = socket.AF_INET
    INET6 = socket.AF_INET6
    UNIX = socket.AF_UNIX


class SockError(OSError):
    """Raised when a socket operation fails."""


@dataclass
class SockFd:
    """A descriptor as seen by a poller: its number, watched events and a user tag."""

    fd: int = _INVALID_FD
    op: SockEvent = SockEvent.NONE
    type: int = 0


def _error(exc: OSError) -> SockError:
    if isinstance(exc, socket.gaierror):
        return SockError(exc.errno, exc.strerror or str(exc))
    code = exc.errno if exc.errno is not None else errno.EIO
    return SockError(code, exc.strerror or os.strerror(code))


def _format_address(family: int, address: Any) -> str:
    if family in (socket.AF_INET, socket.AF_INET6):
        host = address[0].split("%", 1)[0]
        return f"{host}:{address[1]}"
    if isinstance(address, bytes):
        return address.decode("utf-8", errors="replace").rstrip("\0")
    return str(address)


def _timeval(ms: int) -> bytes:
    return struct.pack("@ll", ms // 1000, (ms % 1000) * 1000)


class Sock:
    """A stream socket of one address family, blocking or not."""

    def __init__(
        self,
        type: int = 0,
        blocking: bool = True,
        family: SockFamily | int = SockFamily.INET,
    ) -> None:
        self.fdt = SockFd(type=type)
        self.blocking = blocking
        self.family = SockFamily(family)
        self._sock: socket.socket | None = None

    # -- lifecycle ---------------------------------------------------------

    def _attach(self, sock: socket.socket) -> None:
        self._sock = sock
        self.fdt.fd = sock.fileno()

    def _discard(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        self.fdt.fd = _INVALID_FD

    def _require(self) -> socket.socket:
        if self._sock is None:
            raise SockError(errno.EBADF, os.strerror(errno.EBADF))
        return self._sock

    def close(self) -> None:
        """Close the socket. Closing an already closed socket does nothing."""
        sock = self._sock
        if sock is None:
            return
        self._sock = None
        self.fdt.fd = _INVALID_FD
        try:
            sock.close()
        except OSError as exc:
            raise _error(exc) from exc

    def fileno(self) -> int:
        """Return the descriptor number, or -1 if the socket is closed."""
        return self.fdt.fd

    def __enter__(self) -> Sock:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- options -----------------------------------------------------------

    def set_blocking(self, blocking: bool) -> None:
        """Switch the open socket between blocking and non-blocking mode."""
        sock = self._require()
        try:
            sock.setblocking(blocking)
        except OSError as exc:
            raise _error(exc) from exc

    def _set_timeout(self, option: int, ms: int) -> None:
        sock = self._require()
        try:
            sock.setsockopt(socket.SOL_SOCKET, option, _timeval(ms))
        except OSError as exc:
            raise _error(exc) from exc

    def set_rcvtimeo(self, ms: int) -> None:
        """Set the receive timeout in milliseconds."""
        self._set_timeout(socket.SO_RCVTIMEO, ms)

    def set_sndtimeo(self, ms: int) -> None:
        """Set the send timeout in milliseconds."""
        self._set_timeout(socket.SO_SNDTIMEO, ms)

    # -- server side -------------------------------------------------------

    def _bind_unix(self, path: str) -> None:
        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise _error(exc) from exc
        self._attach(sock)
        try:
            os.unlink(path)
        except OSError:
            pass
        try:
            sock.bind(path[: _UNIX_PATH_MAX - 1])
        except OSError as exc:
            self._discard()
            raise _error(exc) from exc

    def _bind(self, host: str | None, port: str | int | None) -> None:
        if self.family == SockFamily.UNIX:
            self._bind_unix(host or "")
            return

        try:
            infos = socket.getaddrinfo(host, port, self.family, socket.SOCK_STREAM)
        except socket.gaierror as exc:
            raise _error(exc) from exc

        last: OSError = OSError(errno.EADDRNOTAVAIL, os.strerror(errno.EADDRNOTAVAIL))
        for family, socktype, proto, _, address in infos:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                last = exc
                continue

            self._attach(sock)
            try:
                if self.family == SockFamily.INET6:
                    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 1)
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                sock.bind(address)
            except OSError as exc:
                self._discard()
                raise _error(exc) from exc
            return

        self._discard()
        raise _error(last) from last

    def listen(self, host: str | None, port: str | int | None = None) -> None:
        """Bind to ``host``:``port`` (or the path ``host`` for Unix sockets) and listen."""
        self._discard()
        self._bind(host, port)
        sock = self._require()
        try:
            sock.listen(_LISTEN_BACKLOG)
        except OSError as exc:
            self._discard()
            raise _error(exc) from exc

    def accept(self) -> Sock:
        """Accept a pending connection and return it as a new :class:`Sock`.

        Raises BlockingIOError if the socket is non-blocking and no
        connection is waiting.
        """
        sock = self._require()
        try:
            conn, _ = sock.accept()
        except BlockingIOError:
            if not self.blocking:
                raise
            raise SockError(errno.EAGAIN, os.strerror(errno.EAGAIN)) from None
        except OSError as exc:
            raise _error(exc) from exc

        accepted = Sock(self.fdt.type, self.blocking, self.family)
        accepted._attach(conn)
        try:
            if self.family != SockFamily.UNIX:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn.setblocking(self.blocking)
        except OSError as exc:
            accepted._discard()
            raise _error(exc) from exc
        return accepted

    # -- client side -------------------------------------------------------

    def _connect_unix(self, path: str) -> None:
        try:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        except OSError as exc:
            raise _error(exc) from exc
        self._attach(sock)

        if len(path.encode()) >= _UNIX_PATH_MAX:
            self._discard()
            raise SockError(errno.EINVAL, os.strerror(errno.EINVAL))
        try:
            sock.connect(path)
        except OSError as exc:
            self._discard()
            raise _error(exc) from exc

    def _bind_src(self, addr: str | None, port: str | int | None) -> None:
        sock = self._require()
        try:
            infos = socket.getaddrinfo(addr, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror as exc:
            raise _error(exc) from exc

        last: OSError = OSError(errno.EADDRNOTAVAIL, os.strerror(errno.EADDRNOTAVAIL))
        for *_, address in infos:
            try:
                sock.bind(address)
            except OSError as exc:
                last = exc
                continue
            return
        raise _error(last) from last

    def connect(
        self,
        dst_addr: str,
        dst_port: str | int | None = None,
        src_addr: str | None = None,
        src_port: str | int | None = None,
    ) -> None:
        """Connect to ``dst_addr``:``dst_port``, optionally from a source address.

        Addresses of the socket's own family are tried first, then the rest.
        A non-blocking socket whose connection is still in progress raises
        BlockingIOError and stays open; call :meth:`finish_connect` once it
        becomes writable.
        """
        self._discard()
        if self.family == SockFamily.UNIX:
            self._connect_unix(dst_addr)
            return

        try:
            infos = socket.getaddrinfo(
                dst_addr, dst_port, socket.AF_UNSPEC, socket.SOCK_STREAM
            )
        except socket.gaierror as exc:
            raise _error(exc) from exc

        preferred = [info for info in infos if info[0] == self.family]
        others = [info for info in infos if info[0] != self.family]

        last: OSError = OSError(errno.ECONNREFUSED, os.strerror(errno.ECONNREFUSED))
        for family, socktype, proto, _, address in preferred + others:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as exc:
                last = exc
                continue

            self.family = SockFamily(family)
            self._attach(sock)
            try:
                sock.setblocking(self.blocking)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as exc:
                self._discard()
                raise _error(exc) from exc

            if src_addr is not None or src_port is not None:
                try:
                    self._bind_src(src_addr, src_port)
                except SockError:
                    self._discard()
                    raise

            code = sock.connect_ex(address)
            if code == 0:
                return
            if not self.blocking and code in _IN_PROGRESS:
                raise BlockingIOError(errno.EAGAIN, os.strerror(errno.EAGAIN))

            last = OSError(code, os.strerror(code))
            self._discard()

        self._discard()
        raise _error(last) from last

    def finish_connect(self) -> None:
        """Check the outcome of a non-blocking connect once the socket is writable."""
        sock = self._require()
        try:
            code = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise _error(exc) from exc
        if code != 0:
            raise SockError(code, os.strerror(code))

    # -- data transfer -----------------------------------------------------

    def send(self, data: bytes, flags: int = 0) -> int:
        """Send ``data`` and return the number of bytes sent."""
        if not data:
            return 0
        sock = self._require()
        try:
            return sock.send(data, flags)
        except BlockingIOError:
            raise
        except OSError as exc:
            raise _error(exc) from exc

    def recv(self, size: int, flags: int = 0) -> bytes:
        """Receive up to ``size`` bytes.

        Returns ``b""`` if ``size`` is not positive. Raises EOFError when
        the peer has closed the connection.
        """
        if size <= 0:
            return b""
        sock = self._require()
        try:
            data = sock.recv(size, flags)
        except BlockingIOError:
            raise
        except OSError as exc:
            raise _error(exc) from exc
        if not data:
            raise EOFError("connection closed by peer")
        return data

    # -- addresses ---------------------------------------------------------

    def local_str(self) -> str:
        """Return the local address as "host:port", or the path for Unix sockets."""
        sock = self._require()
        try:
            address = sock.getsockname()
        except OSError as exc:
            raise _error(exc) from exc
        return _format_address(sock.family, address)

    def remote_str(self) -> str:
        """Return the remote address as "host:port", or the path for Unix sockets."""
        sock = self._require()
        try:
            address = sock.getpeername()
        except OSError as exc:
            raise _error(exc) from exc
        return _format_address(sock.family, address)

    def __str__(self) -> str:
        try:
            local = self.local_str()
        except SockError:
            local = ""
        try:
            remote = self.remote_str()
        except SockError:
            remote = ""
        return f"Local({local}), Remote({remote}) "


def startup() -> None:
    """Prepare the socket layer; call once at application start.

    Nothing needs preparing on POSIX systems.
    """


def cleanup() -> None:
    """Release the socket layer; call once before the application exits.

    Nothing needs releasing on POSIX systems.
    """


def notify_systemd(msg: str) -> None:
    """Send a notification such as "READY=1\\n" to the socket in NOTIFY_SOCKET.

    Raises SockError with errno EINVAL if NOTIFY_SOCKET is unset or not an
    absolute path or abstract ("@") name, and SockError if sending fails.
    """
    target = os.environ.get("NOTIFY_SOCKET")
    if not target or target[0] not in "@/" or len(target) < 2:
        raise SockError(errno.EINVAL, os.strerror(errno.EINVAL))

    address = target[: _UNIX_PATH_MAX - 1]
    if address.startswith("@"):
        address = "\0" + address[1:]

    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    except OSError as exc:
        raise _error(exc) from exc
    with sock:
        try:
            sock.sendto(msg.encode(), _MSG_NOSIGNAL, address)
        except OSError as exc:
            raise _error(exc) from exc