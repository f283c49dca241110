"""Accumulates finalized transcript segments for one session."""

from dataclasses import dataclass

from ..livetypes import TranscriptSegment

SEGMENT_SEPARATOR = "\n"


@dataclass
class TranscriptAccumulator:
    """Append-only full transcript.

    Only final segments are kept; interim segments never touch the text.
    """

    full_transcript: str = ""
    segment_count: int = 0

    def append(self, segment: TranscriptSegment) -> bool:
        """Append a segment if it is final.

        Returns:
            True if the transcript changed
        """
        if not segment.is_final or not segment.text:
            return False

        if self.full_transcript:
            self.full_transcript += SEGMENT_SEPARATOR + segment.text
        else:
            self.full_transcript = segment.text
        self.segment_count += 1
        return True

    def __len__(self) -> int:
        return len(self.full_transcript)

    def __bool__(self) -> bool:
        return bool(self.full_transcript)
