"""
Meeting recording and speaker attribution.

Records microphone audio, transcribes it through the configured engine and
labels each segment with a speaker from the voice profile store.
"""

from .errors import RecordingError, DeviceUnavailable, TranscriptionFailed, DimensionMismatch
from .profiles import VoiceProfile, VoiceProfileStore, SpeakerMatch
from .names import NameRecognizer, recognize_name
from .segmenter import RawSegment, RawTranscription, TranscriptionSegment, TranscriptionSegmenter
from .state import RecordingStatus, RecordingSession, RecordingStateMachine


# Lazy imports so the pipeline can be used without an audio backend installed
def __getattr__(name):
    if name == "MicrophoneCapture":
        from .capture import MicrophoneCapture
        return MicrophoneCapture
    elif name == "RecordingOrchestrator":
        from .orchestrator import RecordingOrchestrator
        return RecordingOrchestrator
    elif name == "TranscriptionOutcome":
        from .orchestrator import TranscriptionOutcome
        return TranscriptionOutcome
    elif name == "ProfileStorage":
        from .profile_storage import ProfileStorage
        return ProfileStorage
    elif name == "TranscriptWriter":
        from .transcript import TranscriptWriter
        return TranscriptWriter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "RecordingError",
    "DeviceUnavailable",
    "TranscriptionFailed",
    "DimensionMismatch",
    "VoiceProfile",
    "VoiceProfileStore",
    "SpeakerMatch",
    "NameRecognizer",
    "recognize_name",
    "RawSegment",
    "RawTranscription",
    "TranscriptionSegment",
    "TranscriptionSegmenter",
    "RecordingStatus",
    "RecordingSession",
    "RecordingStateMachine",
    "MicrophoneCapture",
    "RecordingOrchestrator",
    "TranscriptionOutcome",
    "ProfileStorage",
    "TranscriptWriter",
]
