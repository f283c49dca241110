"""Pure audio processing functions.

All functions in this module are pure (no side effects, no I/O).
They can be tested in isolation without mocking anything.
"""

import base64
import binascii

from ..constants import PCM16_SAMPLE_WIDTH
from ..livetypes import MalformedMessage


def decode_base64_audio(payload: str) -> bytes:
    """Decode a transport-encoded audio payload into raw bytes.

    Args:
        payload: Base64 string as sent by the client

    Returns:
        Decoded bytes

    Raises:
        MalformedMessage: If the payload is empty or not valid base64

    Example:
        >>> decode_base64_audio("AAABAA==")
        b'\\x00\\x00\\x01\\x00'
    """
    if not isinstance(payload, str) or not payload.strip():
        raise MalformedMessage("Audio payload is empty")

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedMessage(f"Audio payload is not valid base64: {e}") from e


def validate_pcm16_frame(frame: bytes) -> None:
    """Check that a raw frame holds whole PCM16 samples.

    Raises:
        MalformedMessage: If the frame is empty or ends in half a sample
    """
    if not frame:
        raise MalformedMessage("Audio payload decoded to zero bytes")
    if len(frame) % PCM16_SAMPLE_WIDTH != 0:
        raise MalformedMessage(
            f"PCM16 frame must have an even number of bytes, got {len(frame)}"
        )


def decode_audio_frame(payload: str) -> bytes:
    """Decode a base64 audio message into a PCM16 frame ready for upstream.

    Raises:
        MalformedMessage: If the payload is not base64 or not whole PCM16 samples
    """
    frame = decode_base64_audio(payload)
    validate_pcm16_frame(frame)
    return frame
