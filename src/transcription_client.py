"""
Transcription Client

Sends recorded audio to an OpenAI-compatible speech-to-text endpoint and
returns time-stamped segments with token ids.

The endpoint defaults to OpenAI; point TRANSCRIPTION_API_URL at any server
that speaks the same /audio/transcriptions API:
    export TRANSCRIPTION_API_URL=http://localhost:8000/v1
"""

import io
import os
import wave
from typing import Dict, Optional
from urllib.parse import urlparse

import numpy as np
import requests

from logger import get_logger
from meeting.errors import TranscriptionFailed
from meeting.segmenter import RawTranscription, parse_transcription_payload

log = get_logger("client")

DEFAULT_API_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "whisper-1"


def _validate_api_url(url: str) -> str:
    """Validate API URL has valid scheme and netloc.

    Args:
        url: The API base URL to validate

    Returns:
        The validated URL (stripped of trailing slash)

    Raises:
        ValueError: If URL is malformed
    """
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https"):
        raise ValueError(
            f"Invalid TRANSCRIPTION_API_URL: must start with http:// or https:// (got '{url}')"
        )

    if not parsed.netloc or not parsed.hostname:
        raise ValueError(
            f"Invalid TRANSCRIPTION_API_URL: missing host (got '{url}')"
        )

    return url.rstrip("/")


def encode_wav(audio_data: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono audio as a 16-bit PCM WAV file in memory."""
    if audio_data.dtype == np.float32 or audio_data.dtype == np.float64:
        audio_int16 = (np.clip(audio_data, -1.0, 1.0) * 32767).astype(np.int16)
    elif audio_data.dtype == np.int16:
        audio_int16 = audio_data
    else:
        audio_int16 = audio_data.astype(np.int16)

    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(sample_rate)
        wf.writeframes(audio_int16.tobytes())
    return buffer.getvalue()


class TranscriptionClient:
    """Client for an OpenAI-compatible /audio/transcriptions endpoint.

    Makes exactly one request per call. Failures are raised as
    TranscriptionFailed; retrying is left to the caller.
    """

    def __init__(self, api_url: str = DEFAULT_API_URL, api_key: Optional[str] = None,
                 model: str = DEFAULT_MODEL, timeout: float = 120.0):
        self.api_url = _validate_api_url(api_url)
        self.api_key = api_key
        self.model = model
        self.timeout = timeout  # Read timeout
        self.connect_timeout = 5.0  # Connection timeout (fail fast if server unreachable)

    @classmethod
    def from_config(cls) -> "TranscriptionClient":
        """Build a client from ConfigManager settings and the environment."""
        from utils import ConfigManager

        options = ConfigManager.get_config_section('transcription_options')
        api_url = os.environ.get("TRANSCRIPTION_API_URL") or options.get('api_url') or DEFAULT_API_URL
        return cls(
            api_url=api_url,
            api_key=os.environ.get("OPENAI_API_KEY"),
            model=options.get('model') or DEFAULT_MODEL,
            timeout=float(options.get('timeout') or 120.0)
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for requests, including the API key if configured."""
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def transcribe(
        self,
        audio: np.ndarray,
        sample_rate: int = 16000,
        language: Optional[str] = None,
        model: Optional[str] = None
    ) -> RawTranscription:
        """
        Transcribe audio into time-stamped segments.

        Args:
            audio: int16 or float32 mono numpy array
            sample_rate: Sample rate of audio
            language: Language code (e.g., 'pt', 'en') or None for auto-detect
            model: Model name, defaults to the client's model

        Returns:
            RawTranscription with one RawSegment per engine segment

        Raises:
            TranscriptionFailed: On network errors, non-2xx responses or malformed payloads
        """
        duration = len(audio) / sample_rate if sample_rate else 0.0
        log.debug(f"transcribe() called: {len(audio)} samples ({duration:.1f}s), dtype={audio.dtype}")

        data = {
            "model": model or self.model,
            "response_format": "verbose_json",
        }
        if language:
            data["language"] = language
        files = {"file": ("recording.wav", encode_wav(audio, sample_rate), "audio/wav")}

        try:
            log.debug(f"  POST {self.api_url}/audio/transcriptions (model={data['model']})")
            response = requests.post(
                f"{self.api_url}/audio/transcriptions",
                data=data,
                files=files,
                timeout=(self.connect_timeout, self.timeout),  # (connect, read) timeouts
                headers=self._get_headers()
            )
        except requests.Timeout as e:
            log.debug(f"  TIMEOUT: {e}")
            raise TranscriptionFailed(f"Transcription timed out: {e}")
        except requests.RequestException as e:
            log.debug(f"  REQUEST ERROR: {e}")
            raise TranscriptionFailed(f"Connection error: {e}")

        log.debug(f"  Response received: status={response.status_code}")
        if response.status_code == 401:
            raise TranscriptionFailed("Authentication failed: invalid or missing API key", 401)
        if not 200 <= response.status_code < 300:
            raise TranscriptionFailed(
                f"Server error: {response.status_code} {response.text[:200]}",
                response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionFailed(f"Malformed payload: response is not JSON ({e})")

        result = parse_transcription_payload(payload)
        log.debug(f"  Success: {len(result.segments)} segments")
        return result
