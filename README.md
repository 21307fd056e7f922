# sckit

Small building blocks for systems programs, using only the standard library.

- `sckit.util`: a seeded RC4 pseudo random byte generator (`Rand`),
  power-of-two helpers (`is_pow2`, `to_pow2`), and conversion between byte
  counts and human-readable sizes (`bytes_to_size`, `size_to_bytes`).
- `sckit.sigformat`: `format_safe`, a minimal formatter that understands only
  `%s`, `%d`, `%ld`, `%lld`, `%u`, `%lu`, `%llu`, `%p` and `%%`. It also has
  `signal_log`, which formats such a message and writes it to a file
  descriptor with a single `os.write`.
- `sckit.signals`: `SignalHandler`, `init_signals()` and `signal_name()` for
  graceful shutdown and crash reports.
- `sckit.sock`: `Sock`, a stream socket wrapper for IPv4, IPv6 and Unix
  domain sockets. It supports listen, accept, connect (including non-blocking
  connect and binding a source address), send and receive timeouts, and
  address printing. The module also provides `SockEvent`, `SockFamily`,
  `SockFd`, `notify_systemd`, and the no-op `startup()` / `cleanup()`.
- `sckit.pipe`: `SockPipe`, a one-way pipe that a poller can watch. It is
  `os.pipe` on POSIX and a connected socket pair on Windows.
- `sckit.poll`: `SockPoll`, a readiness poller with level- and
  edge-triggered modes. It uses epoll, or kqueue where epoll is missing, and
  falls back to `select` elsewhere. With `select`, edge mode behaves like
  level mode.

## Install

```
pip install .
```

## Examples

Sizes and random bytes:

```python
from sckit.util import Rand, bytes_to_size, size_to_bytes, to_pow2

size_to_bytes("1kb")        # 1024
size_to_bytes("2m")         # 2097152
bytes_to_size(2 * 1024)     # "2.00 KB"
to_pow2(1023)               # 1024

rnd = Rand(bytes(256))      # seed must be exactly 256 bytes
rnd.read(16)                # 16 pseudo random bytes
```

`size_to_bytes` raises `ValueError` for malformed text, or for a value that
overflows a signed 64-bit integer.

Signal-safe formatting:

```python
from sckit.sigformat import format_safe

format_safe("%s %d %p", "x", -3, 0xabcdef)   # "x -3 0xabcdef"
format_safe("%s", "test", size=3)            # "te"
```

Sockets:

```python
from sckit.sock import Sock, SockFamily

with Sock(0, True, SockFamily.INET) as srv:
    srv.listen("127.0.0.1", "8004")
    print(srv)              # Local(127.0.0.1:8004), Remote()
```

Non-blocking `accept`, `connect`, `send` and `recv` raise `BlockingIOError`
when they would block. After a non-blocking `connect`, call
`finish_connect()` once the socket is writable. `recv` raises `EOFError`
when the peer has closed the connection.

Polling a pipe:

```python
from sckit.pipe import SockPipe
from sckit.poll import SockPoll
from sckit.sock import SockEvent

with SockPoll() as poll, SockPipe(0) as pipe:
    poll.add(pipe.fdt, SockEvent.READ, pipe)
    pipe.write(b"x")
    for result in poll.wait(100):
        print(result.events, result.data)
```

A descriptor that the peer has closed, or that is in error, is reported as
both `READ` and `WRITE`.

Shutdown handling:

```python
import os
from sckit.signals import SignalHandler

read_end, write_end = os.pipe()
handler = SignalHandler(shutdown_fd=write_end)
handler.install()           # main thread only
# watch read_end in your loop; one byte arrives on the first SIGINT/SIGTERM
```

`install()` ignores SIGHUP and SIGPIPE. It hooks SIGINT and SIGTERM, and
turns on `faulthandler` for crash reports. A second shutdown signal exits the
process at once. If there is no shutdown descriptor, the first signal exits
straight away.

## Errors

Failures are raised as exceptions: `SockError`, `PipeError` and `PollError`
(all subclasses of `OSError`), and `FormatError` (a subclass of
`ValueError`).

## What it does not do

sckit is a library only. It installs no command-line program and runs no
server of its own.

## Tests

```
pip install .[test]
pytest
```