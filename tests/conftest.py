"""
Pytest fixtures for Ata tests.
"""

import os
import sys
import tempfile
from pathlib import Path
import pytest

# Keep test logs out of the project folder
os.environ.setdefault("ATA_LOG_DIR", tempfile.mkdtemp(prefix="ata-test-logs-"))

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from meeting.errors import DeviceUnavailable, TranscriptionFailed
from meeting.segmenter import RawSegment, RawTranscription


class FakeCapture:
    """Capture collaborator that lets tests push chunks by hand."""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.callback = None
        self.acquired = False
        self.paused = False
        self.acquire_calls = 0
        self.release_calls = 0

    def acquire(self):
        self.acquire_calls += 1
        if self.fail_with is not None:
            raise DeviceUnavailable(self.fail_with)
        self.acquired = True
        return self

    def on_chunk(self, callback):
        self.callback = callback

    def release(self):
        self.release_calls += 1
        self.acquired = False

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def push(self, samples):
        """Deliver a chunk as the audio callback would."""
        self.callback(np.asarray(samples, dtype=np.int16))


class FakeEngine:
    """Transcription engine returning a canned result (or failing)."""

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else RawTranscription()
        self.error = error
        self.calls = []

    def transcribe(self, audio, sample_rate=16000, language=None, model=None):
        self.calls.append({"audio": audio, "sample_rate": sample_rate,
                           "language": language, "model": model})
        if self.error is not None:
            raise TranscriptionFailed(self.error)
        return self.result


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_capture():
    return FakeCapture()


@pytest.fixture
def two_speaker_result():
    """Engine result: Ana introduces herself, then a stranger, then Ana again."""
    return RawTranscription(segments=[
        RawSegment(text="Bom dia, meu nome é Ana.", start=0.0, end=2.0, features=[1.0, 0.0]),
        RawSegment(text="Vamos começar a pauta.", start=2.5, end=5.0, features=[0.0, 1.0]),
        RawSegment(text="Concordo com a proposta.", start=6.0, end=8.0, features=[0.98, 0.02]),
    ])


@pytest.fixture
def verbose_json_payload():
    """Sample verbose_json response from an /audio/transcriptions endpoint."""
    return {
        "task": "transcribe",
        "language": "portuguese",
        "duration": 9.5,
        "text": "Meu nome é Ana. Aqui é o Carlos falando.",
        "segments": [
            {"id": 0, "start": 0.0, "end": 2.1, "text": " Meu nome é Ana.", "tokens": [50364, 376, 1324]},
            {"id": 1, "start": 2.1, "end": 4.8, "text": " Aqui é o Carlos falando.", "tokens": [50470, 28212, 812, 91]},
        ]
    }


@pytest.fixture
def mock_config():
    """Mock configuration for testing."""
    return {
        "transcription_options": {
            "api_url": "https://api.openai.com/v1",
            "model": "whisper-1",
            "language": "pt",
            "timeout": 120.0
        },
        "speaker_options": {
            "identification_enabled": True,
            "similarity_threshold": 0.9,
            "feature_dimension": 2,
            "placeholder_prefix": "Participant",
            "placeholder_pool_size": 4,
            "placeholder_window_ms": 30000,
            "profiles_file": None
        },
        "recording_options": {
            "sample_rate": 16000,
            "block_size": 1024,
            "device": None
        },
        "meeting_options": {
            "transcripts_folder": None,
            "save_transcripts": False
        },
        "server_options": {
            "host": "127.0.0.1",
            "port": 9877
        },
        "misc": {
            "print_to_terminal": False,
            "log_level": "DEBUG"
        }
    }
