"""Poll-until-ready engine used at every resource-state transition.

A wait runs in two phases:

1. **Constant** — ``floor(budget / interval)`` attempts at a fixed interval
   with ±5% jitter.  The first attempt happens immediately.
2. **Exponential** — starts at *interval*, doubles after every miss and is
   capped at ``ceiling_factor * interval``.  It has no attempt limit and
   ends only when the governing :class:`CancelToken` is done or the probe
   fails hard.

Probes are plain callables returning a :class:`ProbeResult`; they hold no
state of their own, so the same engine serves clusters, instances,
endpoints and snapshots.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from maskclone.errors import (
    OperationCancelled,
    WaitCancelledError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Base polling interval in seconds.
DEFAULT_INTERVAL: float = 60.0

#: Per-wait budget for the constant phase, in seconds.
DEFAULT_WAIT_BUDGET: float = 300.0

#: Relative jitter applied to every sleep (±5%).
DEFAULT_JITTER_FACTOR: float = 0.05

#: Exponential phase ceiling, as a multiple of the base interval.
DEFAULT_CEILING_FACTOR: float = 5.0

TIMEOUT_MESSAGE = "failed to wait available, timeout"
CANCELLED_MESSAGE = "failed to wait available, cancelled"


# ---------------------------------------------------------------------------
# Cancellation token
# ---------------------------------------------------------------------------


class CancelToken:
    """Run-scoped cancellation signal with an optional deadline.

    Child tokens created with :meth:`child` share the parent's cancel
    signal and add a deadline of their own (never later than the
    parent's).  Sleeping through :meth:`wait` returns as soon as the token
    is cancelled, so a signal never has to sit out a backoff interval.
    """

    def __init__(
        self,
        *,
        deadline: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        _event: Optional[threading.Event] = None,
    ) -> None:
        self._event = _event if _event is not None else threading.Event()
        self._deadline = deadline
        self._clock = clock

    @classmethod
    def with_timeout(
        cls, timeout: float, *, clock: Callable[[], float] = time.monotonic,
    ) -> "CancelToken":
        return cls(deadline=clock() + timeout, clock=clock)

    def child(self, timeout: float) -> "CancelToken":
        """Return a token sharing this cancel signal, expiring after *timeout*."""
        deadline = self._clock() + timeout
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CancelToken(deadline=deadline, clock=self._clock, _event=self._event)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or ``None`` when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return ``True`` if the token is done afterwards."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0 and not self.cancelled:
            self._event.wait(seconds)
        return self.done

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("operation cancelled")


# ---------------------------------------------------------------------------
# Probe results
# ---------------------------------------------------------------------------


class ProbeState(str, Enum):
    """Outcome of a single probe call."""

    MET = "met"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class ProbeResult:
    """Tri-state answer from a probe.

    Build instances with :meth:`met`, :meth:`pending` or :meth:`failed`.
    *detail* is logged by the engine; *value* is returned by
    :func:`wait_until` once the condition is met.
    """

    state: ProbeState
    value: Any = None
    detail: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def met(cls, value: Any = None, detail: str = "") -> "ProbeResult":
        return cls(ProbeState.MET, value=value, detail=detail)

    @classmethod
    def pending(cls, detail: str = "") -> "ProbeResult":
        return cls(ProbeState.PENDING, detail=detail)

    @classmethod
    def failed(cls, error: BaseException) -> "ProbeResult":
        return cls(ProbeState.FAILED, error=error, detail=str(error))


Probe = Callable[[], ProbeResult]


# ---------------------------------------------------------------------------
# Wait parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WaitSpec:
    """Parameters for one :func:`wait_until` call."""

    budget: float = DEFAULT_WAIT_BUDGET
    interval: float = DEFAULT_INTERVAL
    jitter: float = DEFAULT_JITTER_FACTOR
    ceiling_factor: float = DEFAULT_CEILING_FACTOR

    @property
    def constant_attempts(self) -> int:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        return math.floor(self.budget / self.interval)

    @property
    def max_interval(self) -> float:
        return self.interval * self.ceiling_factor


def jittered(interval: float, jitter: float, rand: Callable[[float, float], float]) -> float:
    """Return *interval* scaled by a random factor in ``[1 - jitter, 1 + jitter]``."""
    return interval * (1.0 + rand(-jitter, jitter))


# ---------------------------------------------------------------------------
# Wait loop
# ---------------------------------------------------------------------------


def wait_until(
    token: CancelToken,
    spec: WaitSpec,
    probe: Probe,
    *,
    log: Optional[logging.Logger] = None,
    rand: Callable[[float, float], float] = random.uniform,
) -> Any:
    """Poll *probe* until it reports met; return its value.

    Raises the probe's error immediately on a hard failure (no retry).
    Raises :class:`WaitCancelledError` when *token* is cancelled and
    :class:`WaitTimeoutError` when its deadline passes, in either case
    without the probe having been met.
    """
    log = log or logger

    attempts = spec.constant_attempts
    for attempt in range(attempts):
        if attempt and token.wait(jittered(spec.interval, spec.jitter, rand)):
            _raise_done(token)
        if token.done:
            _raise_done(token)
        result = _check(probe, log)
        if result.state is ProbeState.MET:
            return result.value

    log.debug(
        "Constant phase exhausted after %d attempts; switching to exponential backoff.",
        attempts,
    )

    interval = spec.interval
    while True:
        if token.wait(jittered(interval, spec.jitter, rand)):
            _raise_done(token)
        result = _check(probe, log)
        if result.state is ProbeState.MET:
            return result.value
        interval = min(interval * 2, spec.max_interval)


def _check(probe: Probe, log: logging.Logger) -> ProbeResult:
    result = probe()
    if result.state is ProbeState.FAILED:
        if result.error is None:
            raise WaitTimeoutError(result.detail or "probe failed")
        raise result.error
    if result.detail:
        log.info("%s", result.detail)
    return result


def _raise_done(token: CancelToken) -> None:
    if token.cancelled:
        raise WaitCancelledError(CANCELLED_MESSAGE)
    raise WaitTimeoutError(TIMEOUT_MESSAGE)
