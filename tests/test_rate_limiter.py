"""Unit tests for the per-client fixed-window rate limiter."""
import threading
import unittest

from orchestrator.rate_limiter import UNKNOWN_CLIENT, RateLimiter, client_identity


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(max_requests=10, window_seconds=60, clock=self.clock)

    def test_tenth_request_allowed_eleventh_blocked(self):
        decisions = [self.limiter.check("1.2.3.4") for _ in range(11)]
        self.assertTrue(all(d.allowed for d in decisions[:10]))
        self.assertFalse(decisions[10].allowed)
        self.assertEqual(decisions[10].retry_after, 60)

    def test_retry_after_is_time_left_in_window(self):
        for _ in range(10):
            self.limiter.check("a")
        self.clock.now += 45.5
        decision = self.limiter.check("a")
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 15)

    def test_window_resets_after_expiry(self):
        for _ in range(11):
            self.limiter.check("a")
        self.clock.now += 60
        # exactly at reset time the old window still applies
        self.assertFalse(self.limiter.check("a").allowed)
        self.clock.now += 0.001
        self.assertTrue(self.limiter.check("a").allowed)

    def test_clients_are_counted_separately(self):
        for _ in range(10):
            self.limiter.check("a")
        self.assertFalse(self.limiter.check("a").allowed)
        self.assertTrue(self.limiter.check("b").allowed)

    def test_expired_windows_are_dropped(self):
        self.limiter.check("a")
        self.limiter.check("b")
        self.clock.now += 30
        self.limiter.check("c")
        self.assertEqual(self.limiter.tracked_clients, 3)

        self.clock.now += 31
        self.assertTrue(self.limiter.check("d").allowed)
        # a and b expired; c is still inside its window
        self.assertEqual(self.limiter.tracked_clients, 2)

    def test_dropping_windows_keeps_live_quota(self):
        for _ in range(10):
            self.limiter.check("a")
        self.clock.now += 59
        self.limiter.check("b")
        self.clock.now += 1
        self.assertFalse(self.limiter.check("a").allowed)

    def test_reset_clears_all_windows(self):
        for _ in range(11):
            self.limiter.check("a")
        self.limiter.reset()
        self.assertTrue(self.limiter.check("a").allowed)

    def test_concurrent_checks_never_exceed_quota(self):
        results = []
        lock = threading.Lock()

        def worker():
            decision = self.limiter.check("shared")
            with lock:
                results.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(sum(results), 10)

    def test_invalid_quota(self):
        with self.assertRaises(ValueError):
            RateLimiter(max_requests=0, window_seconds=60)


class TestClientIdentity(unittest.TestCase):

    def test_forwarded_for_first_hop(self):
        headers = {"x-forwarded-for": "9.9.9.9, 10.0.0.1", "x-real-ip": "8.8.8.8"}
        self.assertEqual(client_identity(headers, "127.0.0.1"), "9.9.9.9")

    def test_real_ip_when_no_forwarded_for(self):
        self.assertEqual(client_identity({"x-real-ip": "8.8.8.8"}, "127.0.0.1"), "8.8.8.8")

    def test_peer_then_unknown(self):
        self.assertEqual(client_identity({}, "127.0.0.1"), "127.0.0.1")
        self.assertEqual(client_identity({}), UNKNOWN_CLIENT)
