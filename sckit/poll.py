"""Readiness polling for sockets and pipes.

:class:`SockPoll` watches :class:`~sckit.sock.SockFd` descriptors for read
and write readiness, optionally in edge-triggered mode. It uses epoll where
available and kqueue on BSD and macOS. Elsewhere it falls back to
``select``, where edge-triggered mode behaves like level-triggered mode.

Descriptors may be added and deleted from other threads while one thread
is waiting. A descriptor that the peer has closed, or that is in error, is
reported as both readable and writable.
"""

from __future__ import annotations

import errno
import os
import select
import threading
from dataclasses import dataclass
from typing import Any

from .pipe import SockPipe
from .sock import SockEvent, SockFd

__all__ = ["PollError", "PollResult", "SockPoll"]

_MAX_EVENTS = 1024
_READ_WRITE = SockEvent.READ | SockEvent.WRITE
_MISSING = object()


class PollError(OSError):
    """Raised when creating, changing, waiting on or closing a poller fails."""


@dataclass(frozen=True)
class PollResult:
    """One ready descriptor: the events that fired and its user data."""

    events: SockEvent
    data: Any = None


def _poll_error(exc: BaseException, what: str) -> PollError:
    code = getattr(exc, "errno", None) or errno.EBADF
    reason = getattr(exc, "strerror", None) or os.strerror(code)
    return PollError(code, f"{what} : {reason}")


def _timeout_seconds(ms: int) -> float | None:
    return None if ms < 0 else ms / 1000.0


class _EpollBackend:
    name = "epoll_ctl"
    wait_name = "epoll_wait"

    def __init__(self) -> None:
        self._ep = select.epoll()

    def apply(self, fd: int, old: SockEvent, new: SockEvent) -> None:
        if new == SockEvent.NONE:
            self._ep.unregister(fd)
            return

        bits = select.EPOLLERR | select.EPOLLHUP | select.EPOLLRDHUP
        if new & SockEvent.READ:
            bits |= select.EPOLLIN
        if new & SockEvent.WRITE:
            bits |= select.EPOLLOUT
        if new & SockEvent.EDGE:
            bits |= select.EPOLLET

        if old == SockEvent.NONE:
            self._ep.register(fd, bits)
        else:
            self._ep.modify(fd, bits)

    @staticmethod
    def _translate(raw: int) -> SockEvent:
        events = SockEvent.NONE
        if raw & select.EPOLLIN:
            events |= SockEvent.READ
        if raw & select.EPOLLOUT:
            events |= SockEvent.WRITE
        if raw & (select.EPOLLHUP | select.EPOLLRDHUP | select.EPOLLERR):
            events = _READ_WRITE
        return events

    def wait(self, timeout: int) -> list[tuple[int, SockEvent]]:
        ready = self._ep.poll(_timeout_seconds(timeout), _MAX_EVENTS)
        return [(fd, self._translate(raw)) for fd, raw in ready]

    def close(self) -> None:
        self._ep.close()


class _KqueueBackend:
    name = "kevent"
    wait_name = "kevent"

    def __init__(self) -> None:
        self._kq = select.kqueue()

    def apply(self, fd: int, old: SockEvent, new: SockEvent) -> None:
        edge_changed = bool(old & SockEvent.EDGE) != bool(new & SockEvent.EDGE)
        changes = []
        for flag, kfilter in (
            (SockEvent.WRITE, select.KQ_FILTER_WRITE),
            (SockEvent.READ, select.KQ_FILTER_READ),
        ):
            if new & flag:
                if not old & flag or edge_changed:
                    action = select.KQ_EV_ADD
                    if new & SockEvent.EDGE:
                        action |= select.KQ_EV_CLEAR
                    changes.append(select.kevent(fd, kfilter, action))
            elif old & flag:
                changes.append(select.kevent(fd, kfilter, select.KQ_EV_DELETE))

        if changes:
            self._kq.control(changes, 0)

    def wait(self, timeout: int) -> list[tuple[int, SockEvent]]:
        ready = self._kq.control(None, _MAX_EVENTS, _timeout_seconds(timeout))
        results = []
        for kev in ready:
            if kev.flags & select.KQ_EV_EOF:
                events = _READ_WRITE
            elif kev.filter == select.KQ_FILTER_READ:
                events = SockEvent.READ
            elif kev.filter == select.KQ_FILTER_WRITE:
                events = SockEvent.WRITE
            else:
                events = SockEvent.NONE
            results.append((kev.ident, events))
        return results

    def close(self) -> None:
        self._kq.close()


class _SelectBackend:
    """Level-triggered fallback; a wakeup pipe interrupts a wait on changes."""

    name = "select"
    wait_name = "select"

    def __init__(self) -> None:
        self._masks: dict[int, SockEvent] = {}
        self._lock = threading.Lock()
        self._polling = False
        self._wakeup = SockPipe()

    def apply(self, fd: int, old: SockEvent, new: SockEvent) -> None:
        with self._lock:
            if new == SockEvent.NONE:
                self._masks.pop(fd, None)
            else:
                self._masks[fd] = new
            polling = self._polling
        if polling:
            self._wakeup.write(b"W")

    def wait(self, timeout: int) -> list[tuple[int, SockEvent]]:
        wake = self._wakeup.fileno()
        with self._lock:
            masks = dict(self._masks)
            self._polling = True

        readers = [wake] + [fd for fd, mask in masks.items() if mask & SockEvent.READ]
        writers = [fd for fd, mask in masks.items() if mask & SockEvent.WRITE]
        try:
            readable, writable, failed = select.select(
                readers, writers, sorted(set(readers + writers)), _timeout_seconds(timeout)
            )
        finally:
            with self._lock:
                self._polling = False

        if wake in readable:
            self._wakeup.read(16)

        found: dict[int, SockEvent] = {}
        for fd in readable:
            if fd != wake:
                found[fd] = found.get(fd, SockEvent.NONE) | SockEvent.READ
        for fd in writable:
            found[fd] = found.get(fd, SockEvent.NONE) | SockEvent.WRITE
        for fd in failed:
            if fd != wake:
                found[fd] = _READ_WRITE
        return list(found.items())[:_MAX_EVENTS]

    def close(self) -> None:
        self._wakeup.close()


def _make_backend() -> _EpollBackend | _KqueueBackend | _SelectBackend:
    if hasattr(select, "epoll"):
        return _EpollBackend()
    if hasattr(select, "kqueue"):
        return _KqueueBackend()
    return _SelectBackend()


class SockPoll:
    """Watches descriptors for readiness and reports them with their user data."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[int, Any] = {}
        try:
            self._backend: Any = _make_backend()
        except OSError as exc:
            raise _poll_error(exc, "poll init") from exc

    @property
    def closed(self) -> bool:
        """True once the poller has been closed."""
        return self._backend is None

    def _require(self) -> Any:
        backend = self._backend
        if backend is None:
            raise PollError(
                errno.EBADF, "poll : poll is not initialized or already terminated"
            )
        return backend

    def close(self) -> None:
        """Release the poller. Closing an already closed poller does nothing."""
        backend, self._backend = self._backend, None
        if backend is None:
            return
        with self._lock:
            self._data.clear()
        try:
            backend.close()
        except OSError as exc:
            raise _poll_error(exc, "poll close") from exc

    def _update(self, fdt: SockFd, new: SockEvent, data: Any) -> None:
        backend = self._require()
        with self._lock:
            old = fdt.op
            if new == SockEvent.EDGE:
                new = SockEvent.NONE
            if new == old:
                return

            # Publish the new state before the kernel can report the fd.
            fdt.op = new
            previous = self._data.get(fdt.fd, _MISSING)
            if new != SockEvent.NONE:
                self._data[fdt.fd] = data

            try:
                if fdt.fd < 0:
                    raise OSError(errno.EBADF, os.strerror(errno.EBADF))
                backend.apply(fdt.fd, old, new)
            except (OSError, ValueError, OverflowError) as exc:
                fdt.op = old
                if previous is _MISSING:
                    self._data.pop(fdt.fd, None)
                else:
                    self._data[fdt.fd] = previous
                raise _poll_error(exc, backend.name) from exc

            if new == SockEvent.NONE:
                self._data.pop(fdt.fd, None)

    def add(self, fdt: SockFd, events: SockEvent | int, data: Any = None) -> None:
        """Start watching ``fdt`` for ``events`` (READ, WRITE, EDGE for edge mode).

        Events already watched stay watched; ``data`` is reported with results.
        """
        new = SockEvent(int(fdt.op) | int(events))
        self._update(fdt, new, data)

    def delete(self, fdt: SockFd, events: SockEvent | int, data: Any = None) -> None:
        """Stop watching ``fdt`` for ``events``; EDGE leaves edge-triggered mode.

        Once no READ or WRITE event remains, the descriptor is removed entirely.
        """
        new = SockEvent(int(fdt.op) & ~int(events))
        self._update(fdt, new, data)

    def wait(self, timeout: int = -1) -> list[PollResult]:
        """Wait up to ``timeout`` milliseconds (-1: forever) and return ready descriptors."""
        backend = self._require()
        try:
            ready = backend.wait(timeout)
        except (OSError, ValueError) as exc:
            raise _poll_error(exc, backend.wait_name) from exc

        with self._lock:
            return [
                PollResult(events, self._data[fd])
                for fd, events in ready
                if fd in self._data
            ]

    def __enter__(self) -> SockPoll:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()