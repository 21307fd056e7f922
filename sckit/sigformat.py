"""Formatting and logging that are safe to use from a signal handler.

Only a small set of conversions is understood: ``%s``, ``%d``, ``%ld``,
``%lld``, ``%u``, ``%lu``, ``%llu``, ``%p`` and ``%%``. Anything else is
rejected with :class:`FormatError`.
"""

from __future__ import annotations

import operator
import os
import re
from typing import Any

__all__ = ["FormatError", "format_safe", "signal_log"]

_LOG_BUFFER_SIZE = 4096
_POINTER_BITS = 64

# '%' followed by up to two 'l' length modifiers and one conversion character.
_SPEC = re.compile(r"%(l{0,2})(.?)", re.DOTALL)


class FormatError(ValueError):
    """Raised for an unsupported conversion or a mismatched argument."""


def _as_int(arg: Any, spec: str) -> int:
    try:
        return operator.index(arg)
    except TypeError:
        raise FormatError(f"{spec} expects an integer, got {type(arg).__name__}") from None


def _unsigned(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def _signed(value: int, bits: int) -> int:
    value = _unsigned(value, bits)
    if value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def _as_text(arg: Any) -> str:
    if arg is None:
        return "(null)"
    if isinstance(arg, (bytes, bytearray)):
        return bytes(arg).decode("utf-8", errors="replace")
    return str(arg)


def format_safe(fmt: str, *args: Any, size: int | None = None) -> str:
    """Format ``args`` into ``fmt`` using the restricted conversion set.

    If ``size`` is given, the result is cut to at most ``size - 1``
    characters, as when writing into a buffer of ``size`` bytes that must
    keep room for a terminator. Integers wrap to the width implied by the
    length modifier: 32 bits without one, 64 bits with ``l`` or ``ll``.
    """
    pieces: list[str] = []
    remaining = iter(args)
    last = 0

    def next_arg(spec: str) -> Any:
        try:
            return next(remaining)
        except StopIteration:
            raise FormatError(f"missing argument for {spec}") from None

    for match in _SPEC.finditer(fmt):
        pieces.append(fmt[last:match.start()])
        last = match.end()

        modifier, conv = match.group(1), match.group(2)
        spec = match.group(0)

        if modifier and conv not in ("d", "u"):
            raise FormatError(f"unsupported conversion: {spec!r}")

        if conv == "s":
            pieces.append(_as_text(next_arg(spec)))
        elif conv == "d":
            bits = 64 if modifier else 32
            pieces.append(str(_signed(_as_int(next_arg(spec), spec), bits)))
        elif conv == "u":
            bits = 64 if modifier else 32
            pieces.append(str(_unsigned(_as_int(next_arg(spec), spec), bits)))
        elif conv == "p":
            value = _unsigned(_as_int(next_arg(spec), spec), _POINTER_BITS)
            pieces.append(f"0x{value:x}")
        elif conv == "%":
            pieces.append("%")
        else:
            raise FormatError(f"unsupported conversion: {spec!r}")

    pieces.append(fmt[last:])
    text = "".join(pieces)

    if size is not None:
        capacity = max(size - 1, 0)
        text = text[:capacity]
    return text


def signal_log(fd: int, fmt: str, *args: Any) -> int:
    """Format a message and write it to ``fd`` with a single ``os.write``.

    Write failures are ignored, as a signal handler has nowhere to report
    them. Returns the number of bytes written (0 if the write failed).
    """
    text = format_safe(fmt, *args, size=_LOG_BUFFER_SIZE)
    try:
        return os.write(fd, text.encode("utf-8", errors="replace"))
    except OSError:
        return 0