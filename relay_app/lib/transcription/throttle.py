"""Time-based throttling of transcript persistence.

Two independent tiers gate how often the transcript is written downstream:
the ``live`` tier feeds ``live_transcript`` on a short interval and the
``recording`` tier feeds ``recording_transcript`` on a long one.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from ..constants import LIVE_PERSIST_INTERVAL, RECORDING_PERSIST_INTERVAL


@dataclass
class ThrottleTier:
    """One persistence tier with its own interval and timestamp."""

    name: str
    field_name: str
    interval: float
    last_persist: Optional[float] = None

    def should_persist(self, now: float) -> bool:
        """Decide whether this tier may persist at ``now``.

        A positive decision advances the timestamp; a negative one never
        does, so a burst after a long idle period fires exactly once.
        """
        if self.last_persist is not None and now - self.last_persist < self.interval:
            return False
        self.last_persist = now
        return True


@dataclass
class PersistenceThrottler:
    """Decides which transcript fields are due for persistence.

    Usage:
        throttler = PersistenceThrottler()
        throttler.start()  # at session.init
        records = throttler.due_records("hello")  # [] until an interval elapsed
    """

    live_interval: float = LIVE_PERSIST_INTERVAL
    recording_interval: float = RECORDING_PERSIST_INTERVAL
    clock: Callable[[], float] = time.monotonic
    tiers: list[ThrottleTier] = field(init=False)

    def __post_init__(self) -> None:
        self.tiers = [
            ThrottleTier("live", "live_transcript", self.live_interval),
            ThrottleTier("recording", "recording_transcript", self.recording_interval),
        ]

    def start(self, now: Optional[float] = None) -> None:
        """Open the throttle window for every tier."""
        now = self.clock() if now is None else now
        for tier in self.tiers:
            tier.last_persist = now

    def due_records(
        self, transcript: str, now: Optional[float] = None
    ) -> list[dict[str, str]]:
        """One persistence record for every tier that fires at ``now``."""
        if not transcript:
            return []
        now = self.clock() if now is None else now
        return [
            {tier.field_name: transcript}
            for tier in self.tiers
            if tier.should_persist(now)
        ]

    def flush_fields(self, transcript: str) -> dict[str, str]:
        """All transcript fields, bypassing the intervals."""
        return {tier.field_name: transcript for tier in self.tiers}
