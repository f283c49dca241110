"""Tests for TranscriptAccumulator."""

from relay_app.lib.livetypes import TranscriptSegment
from relay_app.lib.transcription.accumulator import TranscriptAccumulator


def final(text: str) -> TranscriptSegment:
    return TranscriptSegment(text=text, is_final=True)


class TestTranscriptAccumulator:
    """Tests for transcript accumulation."""

    def test_starts_empty(self):
        acc = TranscriptAccumulator()

        assert acc.full_transcript == ""
        assert not acc
        assert len(acc) == 0

    def test_first_segment_has_no_separator(self):
        acc = TranscriptAccumulator()

        assert acc.append(final("hello"))
        assert acc.full_transcript == "hello"

    def test_segments_joined_by_newline(self):
        """Final segments are joined in arrival order."""
        acc = TranscriptAccumulator()
        for text in ("hello", "world", "again"):
            acc.append(final(text))

        assert acc.full_transcript == "hello\nworld\nagain"
        assert acc.segment_count == 3

    def test_interim_segment_ignored(self):
        """Interim segments never change the transcript."""
        acc = TranscriptAccumulator()
        acc.append(final("hello"))

        assert not acc.append(TranscriptSegment(text="wor", is_final=False))
        assert acc.full_transcript == "hello"
        assert acc.segment_count == 1

    def test_empty_final_ignored(self):
        acc = TranscriptAccumulator()

        assert not acc.append(final(""))
        assert acc.full_transcript == ""

    def test_prefix_preserved(self):
        """Each appended segment extends the previous transcript."""
        acc = TranscriptAccumulator()
        previous = ""
        for text in ("one", "two", "three"):
            acc.append(final(text))
            assert acc.full_transcript.startswith(previous)
            previous = acc.full_transcript
