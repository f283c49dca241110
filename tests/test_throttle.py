"""Tests for persistence throttling.

These tests verify:
- Each tier fires at most once per interval
- Tiers are independent
- Flushes bypass the intervals
"""

from relay_app.lib.transcription.throttle import PersistenceThrottler, ThrottleTier


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestThrottleTier:
    """Tests for a single tier."""

    def test_fires_without_history(self):
        tier = ThrottleTier("live", "live_transcript", 5)

        assert tier.should_persist(0.0)
        assert tier.last_persist == 0.0

    def test_blocked_inside_interval(self):
        """A negative decision leaves the timestamp alone."""
        tier = ThrottleTier("live", "live_transcript", 5, last_persist=10.0)

        assert not tier.should_persist(14.9)
        assert tier.last_persist == 10.0

    def test_fires_at_interval(self):
        tier = ThrottleTier("live", "live_transcript", 5, last_persist=10.0)

        assert tier.should_persist(15.0)
        assert tier.last_persist == 15.0

    def test_burst_after_idle_fires_once(self):
        tier = ThrottleTier("live", "live_transcript", 5, last_persist=0.0)

        assert tier.should_persist(100.0)
        assert not tier.should_persist(100.1)
        assert not tier.should_persist(101.0)


class TestPersistenceThrottler:
    """Tests for the two-tier throttler."""

    def make(self, clock: FakeClock) -> PersistenceThrottler:
        throttler = PersistenceThrottler(live_interval=5, recording_interval=30, clock=clock)
        throttler.start()
        return throttler

    def test_nothing_due_right_after_start(self):
        """Windows open at start, so early segments are not persisted."""
        clock = FakeClock(0.0)
        throttler = self.make(clock)
        clock.now = 1.0

        assert throttler.due_records("hello") == []

    def test_live_tier_fires_first(self):
        clock = FakeClock(0.0)
        throttler = self.make(clock)
        clock.now = 5.0

        assert throttler.due_records("hello") == [{"live_transcript": "hello"}]

    def test_both_tiers_fire_as_separate_records(self):
        """Each due tier yields its own record, live first."""
        clock = FakeClock(0.0)
        throttler = self.make(clock)
        clock.now = 31.0

        assert throttler.due_records("hello\nworld") == [
            {"live_transcript": "hello\nworld"},
            {"recording_transcript": "hello\nworld"},
        ]

    def test_tiers_independent(self):
        """Firing the live tier does not reset the recording tier."""
        clock = FakeClock(0.0)
        throttler = self.make(clock)

        clock.now = 6.0
        assert throttler.due_records("a") == [{"live_transcript": "a"}]
        clock.now = 12.0
        assert throttler.due_records("a\nb") == [{"live_transcript": "a\nb"}]
        clock.now = 30.0
        assert throttler.due_records("a\nb\nc") == [
            {"live_transcript": "a\nb\nc"},
            {"recording_transcript": "a\nb\nc"},
        ]
        assert throttler.tiers[1].last_persist == 30.0

    def test_at_most_one_record_per_interval(self):
        clock = FakeClock(0.0)
        throttler = self.make(clock)
        fired = 0
        for tick in range(100):
            clock.now = tick * 0.5
            fired += len([r for r in throttler.due_records("x") if "live_transcript" in r])

        # 0..49.5s with a 5s window
        assert fired == 9

    def test_empty_transcript_never_due(self):
        clock = FakeClock(100.0)
        throttler = PersistenceThrottler(clock=clock)

        assert throttler.due_records("") == []

    def test_explicit_now(self):
        throttler = PersistenceThrottler(live_interval=5, recording_interval=30)
        throttler.start(now=0.0)

        assert throttler.due_records("a", now=4.0) == []
        assert throttler.due_records("a", now=5.0) == [{"live_transcript": "a"}]

    def test_flush_fields(self):
        """Flush writes both fields regardless of timing."""
        clock = FakeClock(0.0)
        throttler = self.make(clock)

        assert throttler.flush_fields("hello\nworld") == {
            "live_transcript": "hello\nworld",
            "recording_transcript": "hello\nworld",
        }
