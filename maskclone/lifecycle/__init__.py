"""Temp resource lifecycle: waiting, identifiers and cleanup."""

from maskclone.lifecycle.backoff import (
    CancelToken,
    ProbeResult,
    ProbeState,
    WaitSpec,
    wait_until,
)
from maskclone.lifecycle.cleanup import CleanupGuard, TempResourceSet

__all__ = [
    "CancelToken",
    "CleanupGuard",
    "ProbeResult",
    "ProbeState",
    "TempResourceSet",
    "WaitSpec",
    "wait_until",
]
