"""
Tests for progress and ETA bookkeeping.
"""

from filebeam.transfer.progress import ProgressTracker


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_eta_calculating_before_any_bytes():
    clock = FakeClock()
    tracker = ProgressTracker(1000, clock=clock)
    tracker.start()
    clock.now += 1
    assert tracker.progress == 0
    assert tracker.eta_seconds is None


def test_eta_calculating_with_zero_elapsed():
    clock = FakeClock()
    tracker = ProgressTracker(1000, clock=clock)
    tracker.start()
    tracker.record(10)
    assert tracker.eta_seconds is None


def test_progress_and_eta_from_average_rate():
    clock = FakeClock()
    tracker = ProgressTracker(1000, clock=clock)
    tracker.start()
    tracker.record(250)
    clock.now += 2  # 125 B/s, 750 remaining
    assert tracker.progress == 25.0
    assert tracker.eta_seconds == 6


def test_eta_rounds_up():
    clock = FakeClock()
    tracker = ProgressTracker(1000, clock=clock)
    tracker.start()
    tracker.record(300)
    clock.now += 1  # 700 remaining at 300 B/s -> 2.33s
    assert tracker.eta_seconds == 3


def test_complete_transfer():
    clock = FakeClock()
    tracker = ProgressTracker(1000, clock=clock)
    tracker.start()
    tracker.record(1000)
    clock.now += 1
    assert tracker.progress == 100.0
    assert tracker.eta_seconds == 0


def test_empty_file_is_already_complete():
    assert ProgressTracker(0).progress == 100.0
