"""
Tests for FailureWindow: pruning, thresholds and concurrent reporting.
"""

import threading

from conftest import FakeProbe
from monitoring.window import FailureWindow


def make_probe(min_failures: int, window: int, label: str = "fake") -> FakeProbe:
    return FakeProbe(label, record={"minFailures": min_failures, "failureWindow": window})


# ============================================================================
# PRUNING
# ============================================================================

class TestPruning:
    def test_failure_exactly_window_old_still_counts(self):
        probe = make_probe(min_failures=2, window=60)
        window = FailureWindow()
        window.report(probe, "down", 0)
        window.report(probe, "down", 30)

        assert window.evaluate_counts(now=60) == {(probe, "down"): 2}

    def test_failure_older_than_window_is_pruned(self):
        probe = make_probe(min_failures=2, window=60)
        window = FailureWindow()
        window.report(probe, "down", 0)
        window.report(probe, "down", 30)

        assert window.evaluate(now=61) == set()
        assert window.pending() == 1

    def test_oldest_failure_drops_out_at_61_seconds(self):
        probe = make_probe(min_failures=3, window=60)
        window = FailureWindow()
        for ts in (0, 30, 61):
            window.report(probe, "down", ts)

        assert window.evaluate_counts(now=61) == {}

        # only 30 and 61 survived; one more failure makes three
        window.report(probe, "down", 62)
        assert window.evaluate_counts(now=62) == {(probe, "down"): 3}

    def test_pair_removed_once_all_timestamps_expire(self):
        probe = make_probe(min_failures=1, window=60)
        window = FailureWindow()
        window.report(probe, "down", 0)

        assert window.evaluate(now=61) == set()
        assert window.pending() == 0

    def test_aging_alone_de_escalates(self):
        probe = make_probe(min_failures=3, window=120)
        window = FailureWindow()
        for ts in (10, 40, 70):
            window.report(probe, "timeout", ts)

        assert window.evaluate(now=70) == {(probe, "timeout")}
        assert window.evaluate(now=130) == {(probe, "timeout")}
        assert window.evaluate(now=145) == set()
        assert window.pending() == 1

    def test_each_probe_uses_its_own_window(self):
        short = make_probe(min_failures=1, window=10, label="short")
        long = make_probe(min_failures=1, window=1000, label="long")
        window = FailureWindow()
        window.report(short, "down", 0)
        window.report(long, "down", 0)

        assert window.evaluate(now=500) == {(long, "down")}


# ============================================================================
# THRESHOLDS AND KEYS
# ============================================================================

class TestEscalation:
    def test_below_min_failures_not_escalated(self):
        probe = make_probe(min_failures=3, window=120)
        window = FailureWindow()
        window.report(probe, "down", 1)
        window.report(probe, "down", 2)

        assert window.evaluate(now=3) == set()

        window.report(probe, "down", 3)
        assert window.evaluate_counts(now=3) == {(probe, "down"): 3}

    def test_distinct_reasons_tracked_separately(self):
        probe = make_probe(min_failures=2, window=120)
        window = FailureWindow()
        window.report(probe, "timeout", 1)
        window.report(probe, "HTTP 503", 2)

        assert window.evaluate(now=3) == set()
        assert window.pending() == 2

    def test_identical_probes_are_distinct_keys(self):
        first = make_probe(min_failures=2, window=120)
        second = make_probe(min_failures=2, window=120)
        window = FailureWindow()
        window.report(first, "down", 1)
        window.report(second, "down", 2)

        assert window.evaluate(now=3) == set()

    def test_same_timestamp_counts_once(self):
        probe = make_probe(min_failures=2, window=120)
        window = FailureWindow()
        window.report(probe, "down", 5)
        window.report(probe, "down", 5)

        assert window.evaluate(now=6) == set()


# ============================================================================
# CONCURRENCY
# ============================================================================

def run_threads(target, count: int) -> None:
    threads = [threading.Thread(target=target, args=(n,)) for n in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


class TestConcurrency:
    def test_concurrent_reports_are_not_lost(self):
        probe = make_probe(min_failures=1, window=10**6)
        window = FailureWindow()
        threads_count, per_thread = 8, 250

        def worker(offset: int) -> None:
            for i in range(per_thread):
                window.report(probe, "down", offset * per_thread + i)

        run_threads(worker, threads_count)

        counts = window.evaluate_counts(now=threads_count * per_thread)
        assert counts == {(probe, "down"): threads_count * per_thread}

    def test_distinct_probes_do_not_corrupt_each_other(self):
        probes = [make_probe(min_failures=1, window=10**6, label=f"host{n}") for n in range(8)]
        window = FailureWindow()
        per_probe = 500

        def worker(index: int) -> None:
            probe = probes[index]
            for i in range(per_probe):
                window.report(probe, f"down {index}", i)
                if i % 50 == 0:
                    window.evaluate_counts(now=i)

        run_threads(worker, len(probes))

        counts = window.evaluate_counts(now=per_probe)
        assert counts == {(probe, f"down {n}"): per_probe for n, probe in enumerate(probes)}
