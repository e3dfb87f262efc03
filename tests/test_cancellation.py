"""Tests for cooperative cancellation of long-running approximations."""

import threading
import unittest

from crcalc import cr as crmod
from crcalc.cancellation import (
    CancellationToken,
    cancellation_scope,
    check_cancelled,
    clear_stop,
    current_token,
    request_stop,
    stop_requested,
)
from crcalc.cr import CR, Kind
from crcalc.types import CancelledError


def _fresh_pi():
    return CR(Kind.GL_PI, slow=True)


class TestGlobalStop(unittest.TestCase):
    """The process-wide stop flag."""

    def tearDown(self):
        clear_stop()

    def test_flag_round_trip(self):
        self.assertFalse(stop_requested())
        request_stop()
        self.assertTrue(stop_requested())
        with self.assertRaises(CancelledError):
            check_cancelled()
        clear_stop()
        check_cancelled()

    def test_stop_interrupts_pi(self):
        """A high-precision pi request observes the flag and leaves its cache alone."""
        pi = _fresh_pi()
        pi.approx_get(-100)
        min_prec = pi.min_prec
        max_appr = pi.max_appr
        request_stop()
        with self.assertRaises(CancelledError) as ctx:
            # About 10,000 decimal digits
            pi.approx_get(-33220)
        self.assertEqual(ctx.exception.code, "CANCELLED")
        self.assertTrue(ctx.exception.transient)
        self.assertTrue(pi.appr_valid)
        self.assertEqual(pi.min_prec, min_prec)
        self.assertEqual(pi.max_appr, max_appr)

    def test_fresh_node_stays_uncached(self):
        node = CR.value_of(3).exp()
        request_stop()
        with self.assertRaises(CancelledError):
            node.approx_get(-2000)
        self.assertFalse(node.appr_valid)

    def test_stop_from_another_thread(self):
        """A stop request from another thread ends a running evaluation."""
        outcome = {}
        started = threading.Event()

        def run():
            started.set()
            try:
                # A million bits of exp(1/4) takes minutes without a stop.
                CR.value_of(1).shift_right(2).exp().approx_get(-1_000_000)
            except CancelledError as e:
                outcome["error"] = e

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        started.wait(5)
        request_stop()
        thread.join(30)
        self.assertFalse(thread.is_alive())
        self.assertIsInstance(outcome.get("error"), CancelledError)

    def test_computation_after_clear(self):
        request_stop()
        clear_stop()
        self.assertIn(crmod.PI.multiply(CR.value_of(100)).approx_get(0), (314, 315))


class TestCancellationScope(unittest.TestCase):
    """Per-call tokens bound to the current thread."""

    def test_scope_binds_token(self):
        token = CancellationToken()
        self.assertIsNone(current_token())
        with cancellation_scope(token) as bound:
            self.assertIs(bound, token)
            self.assertIs(current_token(), token)
            check_cancelled()
        self.assertIsNone(current_token())

    def test_cancelled_token_interrupts(self):
        token = CancellationToken()
        token.cancel()
        self.assertTrue(token.cancelled)
        with cancellation_scope(token):
            with self.assertRaises(CancelledError):
                _fresh_pi().approx_get(-5000)
        # Outside the scope the token no longer applies.
        check_cancelled()

    def test_nested_scopes(self):
        """Only the innermost token is consulted."""
        outer = CancellationToken()
        inner = CancellationToken()
        outer.cancel()
        with cancellation_scope(outer):
            with cancellation_scope(inner):
                check_cancelled()
            with self.assertRaises(CancelledError):
                check_cancelled()

    def test_token_is_thread_local(self):
        token = CancellationToken()
        token.cancel()
        seen = {}

        def other():
            seen["token"] = current_token()
            check_cancelled()

        with cancellation_scope(token):
            thread = threading.Thread(target=other)
            thread.start()
            thread.join(5)
        self.assertIsNone(seen["token"])
