"""
Recording orchestrator: ties capture, the state machine, the transcription
engine and the segmenter together for one recorder instance.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

import numpy as np

from logger import get_logger, log_exception
from .errors import DeviceUnavailable, DimensionMismatch, RecordingError, TranscriptionFailed
from .names import NameRecognizer
from .profile_storage import ProfileStorage
from .profiles import VoiceProfileStore
from .segmenter import RawTranscription, TranscriptionSegment, TranscriptionSegmenter
from .state import RecordingSession, RecordingStateMachine, RecordingStatus

log = get_logger("orchestrator")


class AudioCaptureSource(Protocol):
    """Audio capture collaborator."""

    def acquire(self) -> Any: ...

    def on_chunk(self, callback: Callable[[np.ndarray], None]) -> None: ...

    def release(self) -> None: ...


class TranscriptionEngine(Protocol):
    """Transcription engine collaborator."""

    def transcribe(
        self,
        audio: np.ndarray,
        sample_rate: int = 16000,
        language: Optional[str] = None,
        model: Optional[str] = None
    ) -> RawTranscription: ...


@dataclass
class TranscriptionOutcome:
    """Result of one stop -> transcribe pass."""
    segments: List[TranscriptionSegment] = field(default_factory=list)
    error: Optional[RecordingError] = None
    rejected: bool = False        # stop was not allowed in the current state

    @property
    def success(self) -> bool:
        return self.error is None and not self.rejected

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses."""
        return {
            "success": self.success,
            "segments": [s.to_dict() for s in self.segments],
            "error": self.error.to_dict() if self.error else None
        }


SegmentsListener = Callable[[List[TranscriptionSegment]], None]


class RecordingOrchestrator:
    """
    Owns the chunk buffer and drives a recording through transcription.

    Usage:
        orchestrator = RecordingOrchestrator(capture, engine)
        orchestrator.start()
        ...
        outcome = orchestrator.stop()
        if outcome.success:
            for segment in outcome.segments: ...
    """

    def __init__(
        self,
        capture: AudioCaptureSource,
        engine: TranscriptionEngine,
        store: Optional[VoiceProfileStore] = None,
        segmenter: Optional[TranscriptionSegmenter] = None,
        state_machine: Optional[RecordingStateMachine] = None,
        profile_storage: Optional[ProfileStorage] = None,
        sample_rate: int = 16000,
        language: Optional[str] = None,
        model: Optional[str] = None,
        identification_enabled: bool = True
    ):
        self.capture = capture
        self.engine = engine
        self.store = store if store is not None else VoiceProfileStore()
        self.segmenter = segmenter or TranscriptionSegmenter(self.store, NameRecognizer())
        self.state = state_machine or RecordingStateMachine()
        self.profile_storage = profile_storage
        self.sample_rate = sample_rate
        self.language = language
        self.model = model
        self.identification_enabled = identification_enabled
        self._listeners: List[SegmentsListener] = []
        self.last_start_error: Optional[DeviceUnavailable] = None

        self.capture.on_chunk(self._on_chunk)

        if self.profile_storage is not None:
            self.profile_storage.load_into(self.store)

    @classmethod
    def from_config(cls, capture: AudioCaptureSource = None, engine: TranscriptionEngine = None) -> "RecordingOrchestrator":
        """Build an orchestrator from ConfigManager settings."""
        from utils import ConfigManager
        from .segmenter import TokenFeatureExtractor

        speaker_options = ConfigManager.get_config_section('speaker_options')
        recording_options = ConfigManager.get_config_section('recording_options')
        transcription_options = ConfigManager.get_config_section('transcription_options')

        dimension = speaker_options.get('feature_dimension', 32)
        store = VoiceProfileStore(
            similarity_threshold=speaker_options.get('similarity_threshold', 0.9),
            dimension=dimension,
            placeholder_prefix=speaker_options.get('placeholder_prefix', 'Participant'),
            placeholder_pool_size=speaker_options.get('placeholder_pool_size', 4),
            placeholder_window_ms=speaker_options.get('placeholder_window_ms', 30000)
        )
        segmenter = TranscriptionSegmenter(store, NameRecognizer(), TokenFeatureExtractor(dimension))

        profiles_file = speaker_options.get('profiles_file')
        storage = ProfileStorage(profiles_file) if profiles_file else None

        sample_rate = recording_options.get('sample_rate', 16000)
        if capture is None:
            from .capture import MicrophoneCapture
            capture = MicrophoneCapture(
                sample_rate=sample_rate,
                block_size=recording_options.get('block_size', 1024),
                device=recording_options.get('device')
            )
        if engine is None:
            from transcription_client import TranscriptionClient
            engine = TranscriptionClient.from_config()

        return cls(
            capture=capture,
            engine=engine,
            store=store,
            segmenter=segmenter,
            profile_storage=storage,
            sample_rate=sample_rate,
            language=transcription_options.get('language'),
            model=transcription_options.get('model'),
            identification_enabled=speaker_options.get('identification_enabled', True)
        )

    @property
    def status(self) -> RecordingStatus:
        return self.state.status

    @property
    def session(self) -> RecordingSession:
        return self.state.snapshot()

    def add_listener(self, listener: SegmentsListener):
        """Register a callback for the segments of each successful pass."""
        self._listeners.append(listener)

    def start(self, identification_enabled: Optional[bool] = None) -> bool:
        """
        Start recording.

        Returns False if rejected or the device is unavailable. In the latter
        case ``last_start_error`` holds the DeviceUnavailable of this attempt;
        it is None after a success or a plain rejection.
        """
        if identification_enabled is not None:
            self.identification_enabled = identification_enabled
        failures = []

        def acquire():
            try:
                return self.capture.acquire()
            except DeviceUnavailable as e:
                failures.append(e)
                raise

        started = self.state.start(acquire)
        self.last_start_error = failures[0] if failures else None
        if started:
            log.debug(f"Recording started (identification={self.identification_enabled})")
        elif self.last_start_error is not None:
            log.debug(f"Recording not started: {self.last_start_error.reason}")
        else:
            log.debug(f"Start rejected in {self.state.status.value}")
        return started

    def pause(self) -> bool:
        if not self.state.pause():
            return False
        self._capture_call("pause")
        return True

    def resume(self) -> bool:
        if not self.state.resume():
            return False
        self._capture_call("resume")
        return True

    def cancel(self) -> bool:
        """Abandon the current recording and release the device."""
        if not self.state.cancel():
            return False
        self.capture.release()
        return True

    def acknowledge(self) -> bool:
        """Clear an error so a new recording can start."""
        return self.state.acknowledge()

    def stop(self) -> TranscriptionOutcome:
        """
        Stop recording, transcribe the buffer and resolve speakers.

        Returns:
            TranscriptionOutcome with the segments, or the error that moved the
            recorder into the error state. On failure the audio is discarded.
        """
        if not self.state.request_stop():
            return TranscriptionOutcome(rejected=True)

        self.capture.release()
        chunks = self.state.begin_transcription()
        if chunks is None:
            return TranscriptionOutcome(rejected=True)
        session_id = self.state.session_id

        audio = self._assemble(chunks)
        log.debug(f"Stopped session {session_id}: {len(chunks)} chunks, {len(audio) / self.sample_rate:.1f}s")

        if audio.size == 0:
            self.state.complete(session_id)
            return TranscriptionOutcome(segments=[])

        return self._transcribe_and_apply(audio, session_id)

    def stop_async(self, on_complete: Optional[Callable[[TranscriptionOutcome], None]] = None) -> threading.Thread:
        """Run stop() on a worker thread so the caller isn't blocked by the engine call."""
        def run():
            outcome = self.stop()
            if on_complete:
                on_complete(outcome)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    def transcribe_audio(self, audio: np.ndarray, sample_rate: Optional[int] = None) -> TranscriptionOutcome:
        """
        Transcribe a complete buffer outside the recording lifecycle.

        Used to retry a saved recording. Does not touch the state machine.
        """
        try:
            raw = self.engine.transcribe(
                audio, sample_rate=sample_rate or self.sample_rate,
                language=self.language, model=self.model
            )
            segments = self._segment(raw)
        except (TranscriptionFailed, DimensionMismatch) as e:
            log.debug(f"One-shot transcription failed: {e.kind}: {e.reason}")
            return TranscriptionOutcome(error=e)
        except Exception as e:
            log_exception(e, "in one-shot transcription")
            return TranscriptionOutcome(error=TranscriptionFailed(f"Unexpected error: {type(e).__name__}: {e}"))

        self._publish(segments)
        return TranscriptionOutcome(segments=segments)

    def _transcribe_and_apply(self, audio: np.ndarray, session_id: int) -> TranscriptionOutcome:
        try:
            raw = self.engine.transcribe(
                audio, sample_rate=self.sample_rate,
                language=self.language, model=self.model
            )
            segments = self._segment(raw)
        except (TranscriptionFailed, DimensionMismatch) as e:
            log.debug(f"Transcription failed for session {session_id}: {e.kind}: {e.reason}")
            self.state.fail(e, session_id)
            return TranscriptionOutcome(error=e)
        except Exception as e:
            log_exception(e, "in transcription pass")
            error = TranscriptionFailed(f"Unexpected error: {type(e).__name__}: {e}")
            self.state.fail(error, session_id)
            return TranscriptionOutcome(error=error)

        if not self.state.complete(session_id):
            log.debug(f"Discarding result of stale session {session_id}")
            return TranscriptionOutcome(rejected=True)

        self._publish(segments)
        return TranscriptionOutcome(segments=segments)

    def _segment(self, raw) -> List[TranscriptionSegment]:
        self.segmenter.identification_enabled = self.identification_enabled
        segments = self.segmenter.segment(raw)
        if self.profile_storage is not None and self.identification_enabled:
            self.profile_storage.save_from(self.store)
        return segments

    def _publish(self, segments: List[TranscriptionSegment]):
        for listener in list(self._listeners):
            try:
                listener(segments)
            except Exception as e:
                log_exception(e, "in segments listener")

    def _on_chunk(self, chunk: np.ndarray):
        self.state.append_chunk(chunk)

    def _capture_call(self, method: str):
        handler = getattr(self.capture, method, None)
        if handler is not None:
            handler()

    @staticmethod
    def _assemble(chunks: List[np.ndarray]) -> np.ndarray:
        """Concatenate chunks into one int16 mono buffer."""
        if not chunks:
            return np.array([], dtype=np.int16)
        audio = np.concatenate([np.asarray(c).flatten() for c in chunks])
        if audio.dtype != np.int16:
            if np.issubdtype(audio.dtype, np.floating):
                audio = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
            else:
                audio = audio.astype(np.int16)
        return audio
