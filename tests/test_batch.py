# tests/test_batch.py
"""Test the bounded batch coordinator"""

import threading
import time

import pytest

from spot_library.core.batch import BatchScanCoordinator, CancellationToken


class TestBatchScanCoordinator:
    """Test ordering, errors and cancellation"""

    def test_results_in_input_order(self):
        """Completion order does not change result order"""
        def task(n):
            time.sleep((10 - n) * 0.002)
            return n * 2

        batch = BatchScanCoordinator(workers=4).run(range(10), task)

        assert batch.results == [n * 2 for n in range(10)]
        assert batch.completed == 10
        assert batch.total == 10
        assert not batch.stopped

    def test_bounded_concurrency(self):
        """Never more than `workers` tasks run at once"""
        lock = threading.Lock()
        state = {"running": 0, "peak": 0}

        def task(n):
            with lock:
                state["running"] += 1
                state["peak"] = max(state["peak"], state["running"])
            time.sleep(0.005)
            with lock:
                state["running"] -= 1
            return n

        BatchScanCoordinator(workers=3).run(range(20), task)
        assert state["peak"] <= 3

    def test_errors_are_recorded(self):
        """A raising task becomes a per-item error"""
        def task(n):
            if n % 2:
                raise RuntimeError(f"bad {n}")
            return n

        progress = []
        batch = BatchScanCoordinator(workers=2).run(
            range(6), task, on_progress=lambda done, total, value: progress.append(value)
        )

        assert batch.results == [0, 2, 4]
        assert batch.error_count == 3
        assert sorted(error.index for error in batch.errors) == [1, 3, 5]
        assert {error.message for error in batch.errors} == {"bad 1", "bad 3", "bad 5"}
        assert progress.count(None) == 3
        assert batch.completed == 6

    def test_error_list_is_capped(self):
        """Only max_errors entries are kept, all are counted"""
        def task(n):
            raise ValueError("nope")

        batch = BatchScanCoordinator(workers=2, max_errors=3).run(range(8), task)
        assert len(batch.errors) == 3
        assert batch.error_count == 8
        assert batch.results == []

    def test_cancel_mid_batch(self):
        """Cancelling after 10 of 100 leaves at most 10 + workers completed"""
        workers = 4
        token = CancellationToken()

        def task(n):
            time.sleep(0.001)
            return n

        def on_progress(done, total, value):
            if done == 10:
                token.cancel()

        batch = BatchScanCoordinator(workers=workers).run(
            range(100), task, cancel_token=token, on_progress=on_progress
        )

        assert batch.stopped
        assert 10 <= batch.completed <= 10 + workers
        assert batch.results == sorted(batch.results)

    def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        batch = BatchScanCoordinator().run([1, 2, 3], lambda n: n, cancel_token=token)
        assert batch.stopped
        assert batch.completed == 0
        assert batch.results == []

    def test_empty_input(self):
        batch = BatchScanCoordinator().run([], lambda n: n)
        assert batch.total == 0
        assert not batch.stopped

    def test_invalid_workers(self):
        with pytest.raises(ValueError):
            BatchScanCoordinator(workers=0)
