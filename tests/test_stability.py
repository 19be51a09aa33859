"""Tests for stability tracker module."""

import pytest
from pathlib import Path
from types import SimpleNamespace

from dropwatch.models import FileState, WatchedRoot
from dropwatch.stability import StabilityTracker


ROOT = WatchedRoot(id="/watch", path=Path("/watch"))


class FakeFS:
    """In-memory stand-in for os.stat keyed by path."""

    def __init__(self):
        self.files = {}
        self.stat_calls = 0

    def write(self, path, size, mtime_ns=None):
        self.files[Path(path)] = (size, mtime_ns if mtime_ns is not None else size * 1000)

    def remove(self, path):
        self.files.pop(Path(path), None)

    def stat(self, path):
        self.stat_calls += 1
        try:
            size, mtime_ns = self.files[Path(path)]
        except KeyError:
            raise FileNotFoundError(path)
        return SimpleNamespace(st_size=size, st_mtime_ns=mtime_ns)


def make_tracker(fs, **kwargs):
    kwargs.setdefault("stability_window_ms", 5000)
    kwargs.setdefault("poll_interval_ms", 1000)
    return StabilityTracker(stat_func=fs.stat, clock=lambda: 0.0, **kwargs)


def run_checks(tracker, start, end, step=1.0):
    """Run check() at every step in [start, end] and collect (time, path)."""
    ready = []
    t = start
    while t <= end + 1e-9:
        for tracked in tracker.check(t):
            ready.append((t, tracked.path))
        t += step
    return ready


class TestStabilityTracker:
    """Tests for StabilityTracker class."""

    def test_new_file_is_growing(self):
        fs = FakeFS()
        fs.write("/watch/a.dat", 10)
        tracker = make_tracker(fs)

        tracked = tracker.observe(Path("/watch/a.dat"), ROOT, now=0.0)

        assert tracked is not None
        assert tracked.state == FileState.GROWING
        assert tracked.size == 10
        assert tracked.root == ROOT
        assert len(tracker) == 1
        assert Path("/watch/a.dat") in tracker

    def test_not_settled_before_window(self):
        fs = FakeFS()
        fs.write("/watch/a.dat", 10)
        tracker = make_tracker(fs)

        tracker.observe(Path("/watch/a.dat"), ROOT, now=0.0)

        assert run_checks(tracker, 1.0, 4.0) == []
        assert len(tracker) == 1

    def test_growing_file_scenario(self):
        # Created at t=0, grows until t=3, then stops changing.
        fs = FakeFS()
        path = Path("/watch/a.dat")
        tracker = make_tracker(fs)

        fs.write(path, 100)
        tracker.observe(path, ROOT, now=0.0)

        ready = []
        for t in range(1, 13):
            if t <= 3:
                fs.write(path, 100 * (t + 1))
                tracker.observe(path, ROOT, now=float(t))
            ready.extend((t, f.path) for f in tracker.check(float(t)))

        assert ready == [(8, path)]
        assert len(tracker) == 0

    def test_growth_seen_only_by_polling(self):
        # No raw events after creation; the poll check notices the growth.
        fs = FakeFS()
        path = Path("/watch/a.dat")
        tracker = make_tracker(fs)

        fs.write(path, 1)
        tracker.observe(path, ROOT, now=0.0)

        ready = []
        for t in range(1, 13):
            if t <= 3:
                fs.write(path, t + 1)
            ready.extend((t, f.path) for f in tracker.check(float(t)))

        assert ready == [(8, path)]

    def test_duplicate_events_do_not_reset_timer(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 42)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        tracker.observe(path, ROOT, now=2.0)
        tracker.observe(path, ROOT, now=4.0)

        assert run_checks(tracker, 1.0, 10.0) == [(5.0, path)]

    def test_changed_mtime_resets_timer(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 42, mtime_ns=1)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        fs.write(path, 42, mtime_ns=2)
        tracker.observe(path, ROOT, now=2.0)

        assert run_checks(tracker, 1.0, 10.0) == [(7.0, path)]

    def test_ready_never_before_last_change_plus_window(self):
        fs = FakeFS()
        tracker = make_tracker(fs, stability_window_ms=3000, poll_interval_ms=500)

        last_change = {}
        for i, stop_at in enumerate([0.0, 1.5, 2.0, 4.5]):
            path = Path(f"/watch/f{i}.dat")
            fs.write(path, 1)
            tracker.observe(path, ROOT, now=0.0)
            last_change[path] = 0.0

        ready_at = {}
        t = 0.0
        while t <= 15.0:
            for i, stop_at in enumerate([0.0, 1.5, 2.0, 4.5]):
                path = Path(f"/watch/f{i}.dat")
                if path in tracker and 0 < t <= stop_at:
                    fs.write(path, fs.files[path][0] + 1)
                    tracker.observe(path, ROOT, now=t)
                    last_change[path] = t
            for tracked in tracker.check(t):
                ready_at[tracked.path] = t
            t = round(t + 0.5, 3)

        assert set(ready_at) == set(last_change)
        for path, t_ready in ready_at.items():
            assert t_ready >= last_change[path] + 3.0
            assert t_ready <= last_change[path] + 3.0 + 0.5

    def test_deleted_before_settling_is_silent(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 10)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        fs.remove(path)

        assert run_checks(tracker, 1.0, 10.0) == []
        assert len(tracker) == 0

    def test_forget(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 10)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        assert tracker.get(path).size == 10

        assert tracker.forget(path) is True
        assert tracker.get(path) is None
        assert tracker.forget(path) is False
        assert run_checks(tracker, 1.0, 10.0) == []

    def test_observe_vanished_file(self):
        fs = FakeFS()
        tracker = make_tracker(fs)

        assert tracker.observe(Path("/watch/missing.dat"), ROOT, now=0.0) is None
        assert len(tracker) == 0

    def test_observe_vanished_tracked_file_drops_it(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 10)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        fs.remove(path)

        assert tracker.observe(path, ROOT, now=1.0) is None
        assert path not in tracker

    def test_replayed_events_after_settle_are_ignored(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 10)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        first = run_checks(tracker, 1.0, 6.0)

        # The same OS notifications arrive again
        tracker.observe(path, ROOT, now=7.0)
        tracker.observe(path, ROOT, now=7.0)
        second = run_checks(tracker, 8.0, 20.0)

        assert first == [(5.0, path)]
        assert second == []
        assert len(tracker) == 0

    def test_rewrite_after_settle_starts_new_cycle(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 10)
        tracker = make_tracker(fs)

        tracker.observe(path, ROOT, now=0.0)
        assert run_checks(tracker, 1.0, 6.0) == [(5.0, path)]

        fs.write(path, 20)
        assert tracker.observe(path, ROOT, now=10.0) is not None
        assert run_checks(tracker, 11.0, 20.0) == [(15.0, path)]

    def test_settled_files_ordered_by_first_seen(self):
        fs = FakeFS()
        tracker = make_tracker(fs)

        fs.write("/watch/b.dat", 1)
        fs.write("/watch/a.dat", 1)
        tracker.observe(Path("/watch/b.dat"), ROOT, now=0.0)
        tracker.observe(Path("/watch/a.dat"), ROOT, now=0.5)

        settled = tracker.check(6.0)

        assert [t.path for t in settled] == [Path("/watch/b.dat"), Path("/watch/a.dat")]
        assert all(t.state == FileState.SETTLED for t in settled)

    def test_binary_files_checked_less_often(self):
        fs = FakeFS()
        path = Path("/watch/clip.mxf")
        fs.write(path, 10)
        tracker = make_tracker(
            fs,
            binary_interval_ms=3000,
            is_binary=lambda p: p.suffix == ".mxf",
        )

        tracker.observe(path, ROOT, now=0.0)
        calls_after_observe = fs.stat_calls

        tracker.check(1.0)
        tracker.check(2.0)
        assert fs.stat_calls == calls_after_observe

        tracker.check(3.0)
        assert fs.stat_calls == calls_after_observe + 1

        # Settling is still decided at the stability window
        assert [t.path for t in tracker.check(5.0)] == [path]

    def test_clear(self):
        fs = FakeFS()
        tracker = make_tracker(fs)
        for name in ("a.dat", "b.dat"):
            fs.write(f"/watch/{name}", 1)
            tracker.observe(Path(f"/watch/{name}"), ROOT, now=0.0)

        assert tracker.clear() == 2
        assert len(tracker) == 0
        assert tracker.check(100.0) == []

    def test_uses_clock_when_now_omitted(self):
        fs = FakeFS()
        path = Path("/watch/a.dat")
        fs.write(path, 1)
        now = [0.0]
        tracker = StabilityTracker(
            stability_window_ms=2000,
            poll_interval_ms=500,
            clock=lambda: now[0],
            stat_func=fs.stat,
        )

        tracker.observe(path, ROOT)
        now[0] = 1.0
        assert tracker.check() == []
        now[0] = 2.0
        assert [t.path for t in tracker.check()] == [path]

    def test_real_files(self, tmp_path):
        path = tmp_path / "real.dat"
        path.write_bytes(b"x" * 10)
        root = WatchedRoot.from_path(tmp_path)
        tracker = StabilityTracker(stability_window_ms=1000, poll_interval_ms=100)

        tracker.observe(path, root, now=0.0)

        assert tracker.check(0.5) == []
        assert [t.path for t in tracker.check(1.0)] == [path]
