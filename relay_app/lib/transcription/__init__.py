"""Transcription module - session orchestration, accumulation and throttling."""

from .accumulator import TranscriptAccumulator
from .session import RelaySession
from .throttle import PersistenceThrottler, ThrottleTier

__all__ = [
    "PersistenceThrottler",
    "RelaySession",
    "ThrottleTier",
    "TranscriptAccumulator",
]
