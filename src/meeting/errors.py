"""
Error types for the recording pipeline.

Every failure that reaches a caller carries a machine-readable ``kind`` and a
human-readable ``reason`` so it can be stored on the recording session and
returned from the control server unchanged.
"""

from typing import Optional


class RecordingError(Exception):
    """Base class for pipeline failures."""

    kind: str = "recording_error"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses."""
        return {"kind": self.kind, "reason": self.reason}


class DeviceUnavailable(RecordingError):
    """Raised when no audio input device could be acquired."""

    kind = "device_unavailable"


class TranscriptionFailed(RecordingError):
    """Raised when the transcription engine call fails.

    Covers network errors, non-2xx responses and malformed payloads.
    """

    kind = "transcription_failed"

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(reason)


class DimensionMismatch(RecordingError):
    """Raised when a feature vector does not match the store's dimensionality."""

    kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, name: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        self.name = name
        target = f" for profile '{name}'" if name else ""
        super().__init__(f"Expected {expected}-dimensional features{target}, got {actual}")
