from stream_relay.supervisor import EXIT_GIVE_UP, EXIT_RESTART, CrashTracker


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_crashes_restart_until_limit(tmp_path):
    clock = FakeClock()
    tracker = CrashTracker(str(tmp_path / "crash.json"), max_consecutive=3, clock=clock)
    error = RuntimeError("boom")

    assert tracker.record_crash(error, "test") == EXIT_RESTART
    clock.now += 10
    assert tracker.record_crash(error, "test") == EXIT_RESTART
    clock.now += 10
    assert tracker.record_crash(error, "test") == EXIT_GIVE_UP


def test_spaced_out_crashes_reset_the_count(tmp_path):
    clock = FakeClock()
    path = str(tmp_path / "crash.json")
    error = RuntimeError("boom")

    for _ in range(4):
        # A fresh tracker per crash, as after a process restart.
        tracker = CrashTracker(path, max_consecutive=2, window_seconds=60, clock=clock)
        assert tracker.record_crash(error, "test") == EXIT_RESTART
        clock.now += 61


def test_reset_after_successful_start(tmp_path):
    clock = FakeClock()
    tracker = CrashTracker(str(tmp_path / "crash.json"), max_consecutive=2, clock=clock)
    error = RuntimeError("boom")

    assert tracker.record_crash(error, "test") == EXIT_RESTART
    tracker.reset()
    clock.now += 1
    assert tracker.record_crash(error, "test") == EXIT_RESTART


def test_corrupt_state_file_is_ignored(tmp_path):
    path = tmp_path / "crash.json"
    path.write_text("{not json", encoding="utf-8")
    tracker = CrashTracker(str(path), max_consecutive=5, clock=FakeClock())

    assert tracker.record_crash(RuntimeError("boom"), "test") == EXIT_RESTART


def test_state_file_with_wrong_shape_is_ignored(tmp_path):
    for content in ("[]", '"text"', '{"count": "many"}'):
        path = tmp_path / "crash.json"
        path.write_text(content, encoding="utf-8")
        tracker = CrashTracker(str(path), max_consecutive=5, clock=FakeClock())

        assert tracker.record_crash(RuntimeError("boom"), "test") == EXIT_RESTART
