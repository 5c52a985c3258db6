"""
Recording lifecycle state machine.

idle -> recording -> (paused <-> recording) -> stopping -> transcribing -> idle
with error transitions from the start attempt and from transcription. Every
transition runs under one lock so audio callbacks and control requests can
call in from different threads.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from logger import get_logger
from .errors import DeviceUnavailable, RecordingError

log = get_logger("state")


class RecordingStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPING = "stopping"
    TRANSCRIBING = "transcribing"
    ERROR = "error"


class RecordingEvent(str, Enum):
    START = "start"
    DEVICE_FAILED = "device_failed"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    CANCEL = "cancel"
    TRANSCRIBE = "transcribe"
    COMPLETE = "complete"
    FAIL = "fail"
    ACKNOWLEDGE = "acknowledge"


S = RecordingStatus
E = RecordingEvent

TRANSITIONS: Dict[Tuple[RecordingStatus, RecordingEvent], RecordingStatus] = {
    (S.IDLE, E.START): S.RECORDING,
    (S.IDLE, E.DEVICE_FAILED): S.ERROR,
    (S.RECORDING, E.PAUSE): S.PAUSED,
    (S.PAUSED, E.RESUME): S.RECORDING,
    (S.RECORDING, E.STOP): S.STOPPING,
    (S.PAUSED, E.STOP): S.STOPPING,
    (S.RECORDING, E.CANCEL): S.IDLE,
    (S.PAUSED, E.CANCEL): S.IDLE,
    (S.STOPPING, E.TRANSCRIBE): S.TRANSCRIBING,
    (S.TRANSCRIBING, E.COMPLETE): S.IDLE,
    (S.TRANSCRIBING, E.FAIL): S.ERROR,
    (S.ERROR, E.ACKNOWLEDGE): S.IDLE,
}

# States in which captured chunks are still accepted
BUFFERING_STATES = {S.RECORDING, S.PAUSED}


@dataclass
class RecordingSession:
    """Live state of the recorder."""
    status: RecordingStatus = RecordingStatus.IDLE
    started_at: Optional[datetime] = None
    chunks: List[Any] = field(default_factory=list)
    error: Optional[RecordingError] = None
    session_id: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for status responses."""
        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "chunk_count": len(self.chunks),
            "error": self.error.to_dict() if self.error else None,
            "session_id": self.session_id
        }


StatusListener = Callable[[RecordingStatus, RecordingStatus], None]


class RecordingStateMachine:
    """
    Governs the capture lifecycle for a single recording session.

    Rejected requests return False and leave the state untouched. Listeners
    are called with (old_status, new_status) after the lock is released.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._session = RecordingSession()
        self._listeners: List[StatusListener] = []

    @property
    def status(self) -> RecordingStatus:
        with self._lock:
            return self._session.status

    @property
    def session_id(self) -> int:
        with self._lock:
            return self._session.session_id

    def snapshot(self) -> RecordingSession:
        """Copy of the current session (chunk list copied, chunks shared)."""
        with self._lock:
            s = self._session
            return RecordingSession(
                status=s.status,
                started_at=s.started_at,
                chunks=list(s.chunks),
                error=s.error,
                session_id=s.session_id
            )

    def add_listener(self, listener: StatusListener):
        """Register a callback for status changes."""
        self._listeners.append(listener)

    def start(self, acquire: Callable[[], Any]) -> bool:
        """
        Start a recording if idle.

        Args:
            acquire: Acquires the audio input device; raises DeviceUnavailable on failure

        Returns:
            True if recording started, False if rejected or the device failed
        """
        with self._lock:
            if self._session.status != S.IDLE:
                log.debug(f"START rejected in {self._session.status.value}")
                return False

            try:
                acquire()
            except DeviceUnavailable as e:
                old = self._apply(E.DEVICE_FAILED)
                self._session.error = e
                log.debug(f"START failed: {e.reason}")
                change = (old, S.ERROR)
            else:
                old = self._apply(E.START)
                self._session.session_id += 1
                self._session.started_at = datetime.now()
                self._session.chunks = []
                self._session.error = None
                log.debug(f"START: session {self._session.session_id}")
                change = (old, S.RECORDING)

        self._notify(*change)
        return change[1] == S.RECORDING

    def pause(self) -> bool:
        return self._simple(E.PAUSE)

    def resume(self) -> bool:
        return self._simple(E.RESUME)

    def request_stop(self) -> bool:
        """recording|paused -> stopping; the chunk buffer is frozen from here on."""
        return self._simple(E.STOP)

    def append_chunk(self, chunk: Any) -> bool:
        """Buffer a captured chunk. Chunks outside recording/paused are dropped."""
        with self._lock:
            if self._session.status not in BUFFERING_STATES:
                return False
            self._session.chunks.append(chunk)
            return True

    def begin_transcription(self) -> Optional[List[Any]]:
        """
        stopping -> transcribing, draining the buffer.

        Returns:
            The drained chunks, or None if not in stopping
        """
        with self._lock:
            if (self._session.status, E.TRANSCRIBE) not in TRANSITIONS:
                log.debug(f"TRANSCRIBE rejected in {self._session.status.value}")
                return None
            old = self._apply(E.TRANSCRIBE)
            chunks = self._session.chunks
            self._session.chunks = []
            log.debug(f"TRANSCRIBE: drained {len(chunks)} chunks")

        self._notify(old, S.TRANSCRIBING)
        return chunks

    def complete(self, session_id: Optional[int] = None) -> bool:
        """transcribing -> idle. Ignored when ``session_id`` is not the transcribing session."""
        with self._lock:
            if not self._is_current(E.COMPLETE, session_id):
                return False
            old = self._apply(E.COMPLETE)
            self._reset_to_idle()

        self._notify(old, S.IDLE)
        return True

    def fail(self, error: RecordingError, session_id: Optional[int] = None) -> bool:
        """transcribing -> error, keeping the reason for the caller."""
        with self._lock:
            if not self._is_current(E.FAIL, session_id):
                return False
            old = self._apply(E.FAIL)
            self._session.error = error
            log.debug(f"FAIL: {error.kind}: {error.reason}")

        self._notify(old, S.ERROR)
        return True

    def cancel(self) -> bool:
        """recording|paused -> idle, discarding buffered audio."""
        with self._lock:
            if (self._session.status, E.CANCEL) not in TRANSITIONS:
                log.debug(f"CANCEL rejected in {self._session.status.value}")
                return False
            old = self._apply(E.CANCEL)
            discarded = len(self._session.chunks)
            self._reset_to_idle()
            log.debug(f"CANCEL: discarded {discarded} chunks")

        self._notify(old, S.IDLE)
        return True

    def acknowledge(self) -> bool:
        """error -> idle once the caller has seen the error."""
        with self._lock:
            if (self._session.status, E.ACKNOWLEDGE) not in TRANSITIONS:
                return False
            old = self._apply(E.ACKNOWLEDGE)
            self._reset_to_idle()

        self._notify(old, S.IDLE)
        return True

    def _simple(self, event: RecordingEvent) -> bool:
        with self._lock:
            key = (self._session.status, event)
            if key not in TRANSITIONS:
                log.debug(f"{event.value.upper()} rejected in {self._session.status.value}")
                return False
            old = self._apply(event)
            new = self._session.status

        self._notify(old, new)
        return True

    def _is_current(self, event: RecordingEvent, session_id: Optional[int]) -> bool:
        if (self._session.status, event) not in TRANSITIONS:
            log.debug(f"{event.value.upper()} rejected in {self._session.status.value}")
            return False
        if session_id is not None and session_id != self._session.session_id:
            log.debug(f"{event.value.upper()} ignored: stale session {session_id} (current {self._session.session_id})")
            return False
        return True

    def _apply(self, event: RecordingEvent) -> RecordingStatus:
        """Move along the transition table. Caller holds the lock and has checked the key."""
        old = self._session.status
        self._session.status = TRANSITIONS[(old, event)]
        log.debug(f"{old.value} -> {self._session.status.value} ({event.value})")
        return old

    def _reset_to_idle(self):
        self._session.started_at = None
        self._session.chunks = []
        self._session.error = None

    def _notify(self, old: RecordingStatus, new: RecordingStatus):
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception as e:
                log.error(f"Status listener failed: {e}", exc_info=e)
