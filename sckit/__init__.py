"""Systems helpers: RC4 random bytes, size formatting, signal-safe logging,
signal handling, sockets, pollable pipes and readiness polling."""

__version__ = "2.0.0"

__all__ = ["util", "sigformat", "signals", "sock", "pipe", "poll"]