"""Tests for maskclone.lifecycle.backoff — wait engine and cancel token."""

from __future__ import annotations

import threading
import time

import pytest

from maskclone.errors import (
    OperationCancelled,
    ProviderCallError,
    WaitCancelledError,
    WaitTimeoutError,
)
from maskclone.lifecycle.backoff import (
    CANCELLED_MESSAGE,
    DEFAULT_CEILING_FACTOR,
    DEFAULT_INTERVAL,
    DEFAULT_JITTER_FACTOR,
    DEFAULT_WAIT_BUDGET,
    TIMEOUT_MESSAGE,
    CancelToken,
    ProbeResult,
    ProbeState,
    WaitSpec,
    jittered,
    wait_until,
)


# ── helpers ──────────────────────────────────────────────────────────────


class RecordingToken:
    """Token double: never done, records every requested sleep."""

    def __init__(self):
        self.sleeps = []
        self.cancelled = False
        self.done = False

    def wait(self, seconds):
        self.sleeps.append(seconds)
        return False


def _met_on(n: int, value="ok"):
    """Probe that is pending for n-1 calls, then met."""
    calls = {"n": 0}

    def probe():
        calls["n"] += 1
        if calls["n"] >= n:
            return ProbeResult.met(value)
        return ProbeResult.pending(f"attempt {calls['n']}")

    probe.calls = calls
    return probe


def _never():
    return ProbeResult.pending("still waiting")


def _no_jitter(lo, hi):
    return 0.0


# ── TestConstants ────────────────────────────────────────────────────────


class TestConstants:
    def test_interval(self):
        assert DEFAULT_INTERVAL == 60.0

    def test_budget(self):
        assert DEFAULT_WAIT_BUDGET == 300.0

    def test_jitter(self):
        assert DEFAULT_JITTER_FACTOR == 0.05

    def test_ceiling(self):
        assert DEFAULT_CEILING_FACTOR == 5.0

    def test_timeout_message(self):
        assert TIMEOUT_MESSAGE == "failed to wait available, timeout"


# ── TestWaitSpec ─────────────────────────────────────────────────────────


class TestWaitSpec:
    def test_default_attempts(self):
        assert WaitSpec().constant_attempts == 5

    def test_attempts_floor(self):
        assert WaitSpec(budget=10, interval=3).constant_attempts == 3

    def test_max_interval(self):
        assert WaitSpec(interval=2).max_interval == 10

    def test_non_positive_interval(self):
        with pytest.raises(ValueError):
            WaitSpec(interval=0).constant_attempts


class TestJittered:
    def test_no_jitter(self):
        assert jittered(60, 0.05, _no_jitter) == 60

    def test_upper_bound(self):
        assert jittered(60, 0.05, lambda lo, hi: hi) == pytest.approx(63.0)

    def test_lower_bound(self):
        assert jittered(60, 0.05, lambda lo, hi: lo) == pytest.approx(57.0)


# ── TestProbeResult ──────────────────────────────────────────────────────


class TestProbeResult:
    def test_met(self):
        r = ProbeResult.met(42, "done")
        assert r.state is ProbeState.MET
        assert r.value == 42

    def test_pending(self):
        assert ProbeResult.pending("x").state is ProbeState.PENDING

    def test_failed_keeps_error(self):
        err = ProviderCallError("DescribeDBClusters", "boom")
        r = ProbeResult.failed(err)
        assert r.error is err
        assert "boom" in r.detail


# ── TestWaitUntil ────────────────────────────────────────────────────────


class TestWaitUntil:
    def test_first_attempt_is_immediate(self):
        token = RecordingToken()
        assert wait_until(token, WaitSpec(budget=5, interval=1), _met_on(1), rand=_no_jitter) == "ok"
        assert token.sleeps == []

    def test_met_within_constant_phase(self):
        token = RecordingToken()
        probe = _met_on(3)
        wait_until(token, WaitSpec(budget=5, interval=1), probe, rand=_no_jitter)
        assert probe.calls["n"] == 3
        assert token.sleeps == [1, 1]

    def test_exponential_phase_doubles_and_caps(self):
        token = RecordingToken()
        probe = _met_on(8)
        wait_until(token, WaitSpec(budget=3, interval=1), probe, rand=_no_jitter)
        assert token.sleeps == [1, 1, 1, 2, 4, 5, 5]

    def test_hard_failure_stops_immediately(self):
        token = RecordingToken()
        err = ProviderCallError("DescribeDBInstances", "denied")
        calls = []

        def probe():
            calls.append(1)
            return ProbeResult.failed(err)

        with pytest.raises(ProviderCallError) as exc_info:
            wait_until(token, WaitSpec(budget=5, interval=1), probe, rand=_no_jitter)
        assert exc_info.value is err
        assert len(calls) == 1
        assert token.sleeps == []

    def test_raising_probe_propagates(self):
        def probe():
            raise ProviderCallError("DescribeDBClusters", "throttled")

        with pytest.raises(ProviderCallError, match="throttled"):
            wait_until(RecordingToken(), WaitSpec(budget=5, interval=1), probe)

    def test_cancelled_token_never_succeeds(self):
        token = CancelToken()
        token.cancel()
        with pytest.raises(WaitTimeoutError) as exc_info:
            wait_until(token, WaitSpec(budget=0.005, interval=0.001), _never)
        assert isinstance(exc_info.value, WaitCancelledError)
        assert isinstance(exc_info.value, OperationCancelled)
        assert str(exc_info.value) == CANCELLED_MESSAGE

    def test_deadline_raises_timeout(self):
        token = CancelToken.with_timeout(0.02)
        with pytest.raises(WaitTimeoutError) as exc_info:
            wait_until(token, WaitSpec(budget=0.002, interval=0.001), _never)
        assert not isinstance(exc_info.value, WaitCancelledError)
        assert str(exc_info.value) == TIMEOUT_MESSAGE

    def test_cancel_interrupts_sleep(self):
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(WaitCancelledError):
                wait_until(token, WaitSpec(budget=600, interval=60), _never)
        finally:
            timer.cancel()
        assert time.monotonic() - started < 5

    def test_pending_detail_logged(self, caplog):
        import logging

        caplog.set_level(logging.INFO, logger="maskclone.lifecycle.backoff")
        wait_until(RecordingToken(), WaitSpec(budget=5, interval=1), _met_on(2), rand=_no_jitter)
        assert "attempt 1" in caplog.text


# ── TestCancelToken ──────────────────────────────────────────────────────


class TestCancelToken:
    def test_fresh_token_not_done(self):
        token = CancelToken()
        assert not token.done
        assert token.remaining() is None

    def test_cancel(self):
        token = CancelToken()
        token.cancel()
        assert token.cancelled and token.done

    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()

    def test_deadline_with_fake_clock(self):
        now = [100.0]
        token = CancelToken.with_timeout(10, clock=lambda: now[0])
        assert token.remaining() == 10
        now[0] = 111.0
        assert token.expired and token.done
        assert not token.cancelled
        assert token.remaining() == 0.0

    def test_child_shares_cancel(self):
        parent = CancelToken()
        child = parent.child(60)
        parent.cancel()
        assert child.cancelled

    def test_child_cancel_reaches_parent(self):
        parent = CancelToken()
        parent.child(60).cancel()
        assert parent.cancelled

    def test_child_deadline_never_exceeds_parent(self):
        now = [0.0]
        parent = CancelToken.with_timeout(5, clock=lambda: now[0])
        child = parent.child(60)
        assert child.remaining() == 5

    def test_child_own_deadline(self):
        now = [0.0]
        parent = CancelToken(clock=lambda: now[0])
        child = parent.child(3)
        now[0] = 4.0
        assert child.expired
        assert not parent.done

    def test_wait_after_deadline_returns_immediately(self):
        token = CancelToken.with_timeout(0.01)
        time.sleep(0.02)
        started = time.monotonic()
        assert token.wait(10) is True
        assert time.monotonic() - started < 1
