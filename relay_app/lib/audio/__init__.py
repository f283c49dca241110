"""Audio processing module with pure functions."""

from .processing import decode_audio_frame, decode_base64_audio, validate_pcm16_frame

__all__ = [
    "decode_audio_frame",
    "decode_base64_audio",
    "validate_pcm16_frame",
]
