import errno
import os
from unittest import mock

import pytest

from sckit.pipe import PipeError, SockPipe
from sckit.sock import SockEvent


def test_write_then_read_round_trip():
    pipe = SockPipe(0)
    assert pipe.write(b"test\0") == 5
    assert pipe.read(5) == b"test\0"
    pipe.close()


def test_fdt_describes_read_end():
    with SockPipe(7) as pipe:
        assert pipe.fdt.type == 7
        assert pipe.fdt.op == SockEvent.NONE
        assert pipe.fileno() == pipe.fdt.fd
        assert pipe.fileno() >= 0


def test_close_twice_is_harmless():
    pipe = SockPipe(0)
    pipe.close()
    pipe.close()
    assert pipe.closed is True
    assert pipe.fileno() == -1


def test_context_manager_closes():
    with SockPipe() as pipe:
        pipe.write(b"x")
    assert pipe.closed is True
    assert pipe.fileno() == -1


def test_partial_read_returns_what_is_available():
    with SockPipe() as pipe:
        pipe.write(b"abc")
        assert pipe.read(10) == b"abc"


def test_multiple_writes_are_read_in_order():
    with SockPipe() as pipe:
        for chunk in (b"one", b"two", b"three"):
            pipe.write(chunk)
        assert pipe.read(11) == b"onetwothree"


def test_write_after_close_raises():
    pipe = SockPipe()
    pipe.close()
    with pytest.raises(PipeError) as info:
        pipe.write(b"test")
    assert info.value.errno == errno.EBADF


def test_read_after_close_raises():
    pipe = SockPipe()
    pipe.close()
    with pytest.raises(PipeError) as info:
        pipe.read(5)
    assert info.value.errno == errno.EBADF


def test_init_failure_raises_with_message():
    with mock.patch("sckit.pipe.os.pipe", side_effect=OSError(errno.EMFILE, "Too many open files")):
        with mock.patch("sckit.pipe._USE_SOCKETS", False):
            with pytest.raises(PipeError) as info:
                SockPipe(0)
    assert info.value.errno == errno.EMFILE
    assert str(info.value.strerror) != ""
    assert "pipe()" in info.value.strerror


def test_close_failure_raises_and_releases():
    real_close = os.close

    def failing_close(fd):
        real_close(fd)
        raise OSError(errno.EIO, "I/O error")

    pipe = SockPipe(0)
    with mock.patch("sckit.pipe.os.close", side_effect=failing_close):
        with pytest.raises(PipeError) as info:
            pipe.close()
    assert info.value.errno == errno.EIO
    assert pipe.closed is True
    pipe.close()
    assert pipe.fileno() == -1


def test_write_failure_raises():
    with SockPipe() as pipe:
        with mock.patch("sckit.pipe.os.write", side_effect=OSError(errno.EINVAL, "Invalid argument")):
            with pytest.raises(PipeError) as info:
                pipe.write(b"0123456789")
    assert info.value.errno == errno.EINVAL


def test_read_failure_raises():
    with SockPipe() as pipe:
        with mock.patch("sckit.pipe.os.read", side_effect=OSError(errno.EINVAL, "Invalid argument")):
            with pytest.raises(PipeError) as info:
                pipe.read(10)
    assert info.value.errno == errno.EINVAL


def test_many_pipes_have_distinct_descriptors():
    pipes = [SockPipe(i) for i in range(100)]
    try:
        fds = {pipe.fileno() for pipe in pipes}
        assert len(fds) == 100
        assert [pipe.fdt.type for pipe in pipes] == list(range(100))
    finally:
        for pipe in pipes:
            pipe.close()
    assert all(pipe.closed for pipe in pipes)