"""Small numeric and text helpers: an RC4 byte generator, power-of-two
arithmetic and conversion between byte counts and human readable sizes."""

from __future__ import annotations

import re

__all__ = ["Rand", "is_pow2", "to_pow2", "bytes_to_size", "size_to_bytes"]

_UINT64_MAX = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1
_INT64_MIN = -(1 << 63)

_SEED_SIZE = 256

_SIZE_SUFFIXES = ("KB", "MB", "GB", "TB", "PB", "EB")
_SIZE_THRESHOLD = 0x0FFFCCCCCCCCCCCC

_MULTIPLIERS = {
    "b": 1,
    "k": 1024,
    "m": 1024**2,
    "g": 1024**3,
    "t": 1024**4,
    "p": 1024**5,
    "e": 1024**6,
}

# Mirrors strtoll(): optional C whitespace, optional sign, decimal digits.
_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


class Rand:
    """Pseudo random byte generator based on RC4.

    The generator is seeded with exactly 256 bytes, typically read from
    ``os.urandom``. The same seed always yields the same stream.
    """

    def __init__(self, seed: bytes) -> None:
        seed = bytes(seed)
        if len(seed) != _SEED_SIZE:
            raise ValueError(f"seed must be {_SEED_SIZE} bytes long, got {len(seed)}")

        self._state = bytearray(seed)
        self._i = 0
        self._j = 0

        state = self._state
        for i, seed_byte in enumerate(seed):
            self._j = (self._j + state[i] + seed_byte) & 0xFF
            state[i], state[self._j] = state[self._j], state[i]

    def read(self, size: int) -> bytes:
        """Return the next ``size`` bytes of the stream (empty if size <= 0)."""
        if size <= 0:
            return b""

        state = self._state
        out = bytearray(size)
        i, j = self._i, self._j
        for pos in range(size):
            i = (i + 1) & 0xFF
            t = state[i]
            j = (j + t) & 0xFF
            state[i] = state[j]
            state[j] = t
            out[pos] = state[(t + state[i]) & 0xFF]
        self._i, self._j = i, j
        return bytes(out)


def _check_uint64(value: int, name: str) -> None:
    if not 0 <= value <= _UINT64_MAX:
        raise ValueError(f"{name} must be an unsigned 64-bit integer, got {value}")


def is_pow2(num: int) -> bool:
    """Return True if ``num`` is a power of two."""
    _check_uint64(num, "num")
    return num != 0 and (num & (num - 1)) == 0


def to_pow2(size: int) -> int:
    """Return the smallest power of two not less than ``size``.

    Zero maps to 1. Values above 2**63 wrap to 0, as with 64-bit arithmetic.
    """
    _check_uint64(size, "size")
    if size == 0:
        return 1
    return (1 << (size - 1).bit_length()) & _UINT64_MAX


def bytes_to_size(val: int) -> str:
    """Format a byte count for humans, e.g. 1024 -> "1.00 KB"."""
    _check_uint64(val, "val")
    if val < 1024:
        return f"{val} B"

    n = 0
    count = val
    for shift in range(40, -1, -10):
        if val <= _SIZE_THRESHOLD >> shift:
            break
        n += 1
        count >>= 10

    return f"{count / 1024:.2f} {_SIZE_SUFFIXES[n]}"


def size_to_bytes(text: str) -> int:
    """Parse a size such as "10", "4k" or "2mb" into a byte count.

    Raises ValueError if the text is malformed or the result overflows a
    signed 64-bit integer.
    """
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"invalid size: {text!r}")

    val = int(match.group(1))
    if not _INT64_MIN <= val <= _INT64_MAX:
        raise ValueError(f"size out of range: {text!r}")

    rest = text[match.end():]
    if not rest:
        return val
    if len(rest) > 2 or (len(rest) == 2 and rest[1].lower() != "b"):
        raise ValueError(f"invalid size suffix: {text!r}")

    multiplier = _MULTIPLIERS.get(rest[0].lower())
    if multiplier is None:
        raise ValueError(f"invalid size suffix: {text!r}")

    if val > _INT64_MAX // multiplier or val * multiplier < _INT64_MIN:
        raise ValueError(f"size out of range: {text!r}")
    return val * multiplier