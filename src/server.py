"""
Ata Control Server

HTTP control surface for the recorder: start / pause / resume / stop a
recording, inspect its state, manage voice profiles and transcribe an
uploaded buffer (retrying a saved recording).

Run with: python run.py
Or: python src/server.py
"""

import base64
import binascii
import os
import sys
from pathlib import Path
from typing import List, Optional

# Add src directory for imports
sys.path.insert(0, str(Path(__file__).parent))

import numpy as np
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from logger import get_logger
from meeting.orchestrator import RecordingOrchestrator, TranscriptionOutcome
from meeting.segmenter import TranscriptionSegment
from meeting.state import RecordingStatus
from meeting.transcript import TranscriptWriter

log = get_logger("server")


# API Token Authentication Middleware
class APITokenMiddleware(BaseHTTPMiddleware):
    """Middleware to check API token if ATA_API_TOKEN is set."""

    # Endpoints that don't require authentication
    PUBLIC_ENDPOINTS = {"/health", "/docs", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        api_token = os.environ.get("ATA_API_TOKEN")

        # If no token configured, allow all requests
        if not api_token:
            return await call_next(request)

        # Allow public endpoints without auth
        if request.url.path in self.PUBLIC_ENDPOINTS:
            return await call_next(request)

        # Check for token in header
        provided_token = request.headers.get("X-API-Token")
        if not provided_token or provided_token != api_token:
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid or missing API token"}
            )

        return await call_next(request)


class StartRequest(BaseModel):
    """Request body for starting a recording."""
    identification_enabled: bool = True


class TranscribeRequest(BaseModel):
    """Request body for one-shot transcription."""
    audio_base64: str  # Base64-encoded int16 PCM audio
    sample_rate: int = 16000


class SegmentModel(BaseModel):
    """A transcribed segment with speaker identification."""
    speaker: str
    text: str
    start_offset_ms: int
    timestamp: str


class ErrorModel(BaseModel):
    kind: str
    reason: str


class SessionStatus(BaseModel):
    """Recorder status response."""
    status: str
    started_at: Optional[str] = None
    chunk_count: int = 0
    error: Optional[ErrorModel] = None
    session_id: int = 0
    profiles: int = 0


class TranscriptionResponse(BaseModel):
    """Segments of a finished recording or one-shot transcription."""
    segments: List[SegmentModel]
    transcript_path: Optional[str] = None


class SpeakersResponse(BaseModel):
    speakers: List[dict]


def _segments_payload(segments: List[TranscriptionSegment]) -> List[SegmentModel]:
    return [SegmentModel(**s.to_dict()) for s in segments]


def _raise_for_outcome(outcome: TranscriptionOutcome, action: str):
    if outcome.rejected:
        raise HTTPException(status_code=409, detail=f"Cannot {action} in the current state")
    if outcome.error is not None:
        raise HTTPException(status_code=502, detail=outcome.error.to_dict())


def create_app(orchestrator: RecordingOrchestrator,
               transcript_writer: Optional[TranscriptWriter] = None) -> FastAPI:
    """
    Build the control app around an orchestrator.

    Args:
        orchestrator: The recorder this server controls
        transcript_writer: If set, each finished recording is saved as markdown
    """
    app = FastAPI(title="Ata Control Server")
    app.add_middleware(APITokenMiddleware)
    app.state.orchestrator = orchestrator
    app.state.transcript_writer = transcript_writer

    def _transition(ok: bool, action: str) -> SessionStatus:
        if not ok:
            raise HTTPException(status_code=409, detail=f"Cannot {action} in the current state")
        return status()

    @app.get("/health")
    def health():
        """Simple health check."""
        return {"status": "ok"}

    @app.get("/status", response_model=SessionStatus)
    def status():
        """Get recorder status."""
        session = orchestrator.session.to_dict()
        return SessionStatus(profiles=len(orchestrator.store), **session)

    @app.post("/recording/start", response_model=SessionStatus)
    def start_recording(request: Optional[StartRequest] = None):
        identification = request.identification_enabled if request else True
        if orchestrator.start(identification_enabled=identification):
            return status()
        if orchestrator.last_start_error is not None:
            raise HTTPException(status_code=503, detail=orchestrator.last_start_error.to_dict())
        if orchestrator.status == RecordingStatus.ERROR:
            raise HTTPException(status_code=409, detail="Acknowledge the current error before starting")
        raise HTTPException(status_code=409, detail="A recording is already in progress")

    @app.post("/recording/pause", response_model=SessionStatus)
    def pause_recording():
        return _transition(orchestrator.pause(), "pause")

    @app.post("/recording/resume", response_model=SessionStatus)
    def resume_recording():
        return _transition(orchestrator.resume(), "resume")

    @app.post("/recording/cancel", response_model=SessionStatus)
    def cancel_recording():
        return _transition(orchestrator.cancel(), "cancel")

    @app.post("/recording/acknowledge", response_model=SessionStatus)
    def acknowledge_error():
        return _transition(orchestrator.acknowledge(), "acknowledge")

    @app.post("/recording/stop", response_model=TranscriptionResponse)
    def stop_recording():
        """Stop the recording and return the speaker-labeled transcript."""
        outcome = orchestrator.stop()
        _raise_for_outcome(outcome, "stop")

        transcript_path = None
        writer = app.state.transcript_writer
        if writer is not None and outcome.segments:
            writer.start_meeting()
            writer.add_segments(outcome.segments)
            transcript_path = str(writer.save())

        return TranscriptionResponse(segments=_segments_payload(outcome.segments),
                                     transcript_path=transcript_path)

    @app.post("/transcribe", response_model=TranscriptionResponse)
    def transcribe(request: TranscribeRequest):
        """Transcribe an uploaded buffer without touching the recording state."""
        try:
            audio_bytes = base64.b64decode(request.audio_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid audio_base64: {e}")
        if len(audio_bytes) % 2:
            raise HTTPException(status_code=400, detail="Audio must be 16-bit PCM")

        audio = np.frombuffer(audio_bytes, dtype=np.int16)
        log.debug(f"/transcribe: {len(audio)} samples at {request.sample_rate}Hz")
        outcome = orchestrator.transcribe_audio(audio, sample_rate=request.sample_rate)
        _raise_for_outcome(outcome, "transcribe")
        return TranscriptionResponse(segments=_segments_payload(outcome.segments))

    @app.get("/speakers", response_model=SpeakersResponse)
    def list_speakers():
        """List voice profiles in creation order."""
        speakers = []
        for name in orchestrator.store.list_profiles():
            profile = orchestrator.store.get_profile(name)
            if profile is not None:
                speakers.append({"name": profile.name, "sample_count": profile.sample_count})
        return SpeakersResponse(speakers=speakers)

    @app.delete("/speakers/{name}")
    def remove_speaker(name: str):
        """Delete a voice profile."""
        if not orchestrator.store.remove_profile(name):
            raise HTTPException(status_code=404, detail=f"Speaker not found: {name}")
        if orchestrator.profile_storage is not None:
            orchestrator.profile_storage.save_from(orchestrator.store)
        return {"removed": name}

    return app


def build_app_from_config() -> FastAPI:
    """Create the orchestrator and transcript writer from ConfigManager."""
    from utils import ConfigManager

    orchestrator = RecordingOrchestrator.from_config()
    writer = None
    if ConfigManager.get_config_value('meeting_options', 'save_transcripts'):
        folder = ConfigManager.get_config_value('meeting_options', 'transcripts_folder')
        writer = TranscriptWriter(output_dir=Path(folder)) if folder else TranscriptWriter()
    return create_app(orchestrator, writer)


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the control server."""
    from utils import ConfigManager
    from logger import set_level

    set_level(ConfigManager.get_config_value('misc', 'log_level') or "DEBUG")
    host = host or ConfigManager.get_config_value('server_options', 'host') or "127.0.0.1"
    port = port or ConfigManager.get_config_value('server_options', 'port') or 9877

    app = build_app_from_config()
    ConfigManager.console_print(f"[Server] Listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv(Path(__file__).parent.parent / ".env")
    run_server()
