"""
Turns raw transcription-engine output into speaker-labeled segments.

Each raw segment is resolved in two steps: an acoustic match against the
voice profile store, then an optional override by a self-introduced name.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from logger import get_logger
from .errors import TranscriptionFailed
from .names import NameRecognizer
from .profiles import VoiceProfileStore

log = get_logger("segmenter")

DEFAULT_FEATURE_DIMENSION = 32


@dataclass
class RawSegment:
    """One segment as returned by the transcription engine."""
    text: str
    start: float                  # Start time in seconds
    end: float = 0.0              # End time in seconds
    tokens: List[int] = field(default_factory=list)
    features: Optional[List[float]] = None  # Embedding supplied alongside the result


@dataclass
class RawTranscription:
    """Full engine result for one audio buffer."""
    segments: List[RawSegment] = field(default_factory=list)
    text: str = ""
    language: Optional[str] = None
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class TranscriptionSegment:
    """A transcribed segment with its resolved speaker."""
    speaker: str
    text: str
    start_offset_ms: int
    timestamp: str                # HH:MM:SS from recording start

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "speaker": self.speaker,
            "text": self.text,
            "start_offset_ms": self.start_offset_ms,
            "timestamp": self.timestamp
        }


RawResult = Union[RawTranscription, Sequence[RawSegment], Mapping]


def format_timestamp(offset_ms: int) -> str:
    """Format a millisecond offset as HH:MM:SS."""
    total_seconds = int(offset_ms // 1000)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_transcription_payload(data: Mapping) -> RawTranscription:
    """
    Parse a verbose JSON transcription payload.

    Expects ``{"segments": [{"text", "start", "end", "tokens"}, ...]}`` as
    returned by OpenAI-compatible ``/audio/transcriptions`` endpoints. A
    per-segment ``features`` list is passed through when present.

    Raises:
        TranscriptionFailed: If the payload is not shaped like a transcription
    """
    if not isinstance(data, Mapping):
        raise TranscriptionFailed(f"Malformed payload: expected an object, got {type(data).__name__}")

    raw_segments = data.get("segments")
    if raw_segments is None:
        raise TranscriptionFailed("Malformed payload: missing 'segments'")
    if not isinstance(raw_segments, list):
        raise TranscriptionFailed("Malformed payload: 'segments' is not a list")

    segments = []
    for i, seg in enumerate(raw_segments):
        if not isinstance(seg, Mapping) or "text" not in seg or "start" not in seg:
            raise TranscriptionFailed(f"Malformed payload: segment {i} lacks 'text' or 'start'")
        features = seg.get("features")
        if features is not None and (not isinstance(features, list) or not features):
            raise TranscriptionFailed(f"Malformed payload: segment {i} has an empty or invalid 'features'")
        try:
            segments.append(RawSegment(
                text=str(seg["text"]),
                start=float(seg["start"]),
                end=float(seg.get("end", seg["start"])),
                tokens=[int(t) for t in seg.get("tokens") or []],
                features=[float(v) for v in features] if features is not None else None
            ))
        except (TypeError, ValueError) as e:
            raise TranscriptionFailed(f"Malformed payload: segment {i}: {e}")

    return RawTranscription(
        segments=segments,
        text=str(data.get("text", "")),
        language=data.get("language"),
        duration_seconds=float(data.get("duration", 0.0) or 0.0)
    )


class TokenFeatureExtractor:
    """
    Projects a segment's token ids onto a fixed-size vector.

    Token ids are hashed into ``dimension`` buckets and the histogram is
    L2-normalized. This is a stand-in for a real speaker embedding: it is
    deterministic and fixed-length, which is all the matching logic needs.
    """

    def __init__(self, dimension: int = DEFAULT_FEATURE_DIMENSION):
        if dimension < 1:
            raise ValueError("dimension must be at least 1")
        self.dimension = dimension

    def _bucket(self, token: int) -> int:
        digest = hashlib.blake2b(str(token).encode("utf-8"), digest_size=4).digest()
        return int.from_bytes(digest, "little") % self.dimension

    def __call__(self, segment: RawSegment) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in segment.tokens:
            vector[self._bucket(token)] += 1.0
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector


class TranscriptionSegmenter:
    """
    Resolves speakers for every segment of a transcription result.

    Usage:
        segmenter = TranscriptionSegmenter(store)
        segments = segmenter.segment(raw_result)
    """

    def __init__(
        self,
        store: VoiceProfileStore,
        recognizer: Optional[NameRecognizer] = None,
        feature_extractor: Optional[Callable[[RawSegment], np.ndarray]] = None,
        identification_enabled: bool = True
    ):
        self.store = store
        self.recognizer = recognizer or NameRecognizer()
        self.feature_extractor = feature_extractor or TokenFeatureExtractor(
            store.dimension or DEFAULT_FEATURE_DIMENSION
        )
        self.identification_enabled = identification_enabled

    def segment(self, raw_result: RawResult) -> List[TranscriptionSegment]:
        """
        Convert a raw engine result into ordered, speaker-labeled segments.

        Args:
            raw_result: RawTranscription, list of RawSegment, or a verbose JSON payload

        Returns:
            One TranscriptionSegment per raw segment, in input order

        Raises:
            TranscriptionFailed: If a payload mapping is malformed
            DimensionMismatch: If extracted features don't fit the profile store
        """
        raw_segments = self._raw_segments(raw_result)
        log.debug(f"Segmenting {len(raw_segments)} raw segments (identification={self.identification_enabled})")

        results = []
        last_offset_ms = 0
        # One lock for the whole pass: merges and lookups can't interleave with another pass
        with self.store.lock:
            snapshot = self.store.to_mapping()
            try:
                for raw in raw_segments:
                    offset_ms = max(int(round(raw.start * 1000)), last_offset_ms)
                    last_offset_ms = offset_ms

                    if self.identification_enabled:
                        speaker = self._resolve_speaker(raw, offset_ms)
                    else:
                        speaker = self.store.placeholder_label(0)

                    results.append(TranscriptionSegment(
                        speaker=speaker,
                        text=raw.text.strip(),
                        start_offset_ms=offset_ms,
                        timestamp=format_timestamp(offset_ms)
                    ))
            except Exception:
                # A failed pass leaves the profiles as they were before it
                self.store.load_mapping(snapshot)
                log.debug(f"Pass failed after {len(results)} segments, profiles rolled back")
                raise

        log.debug(f"Speakers: {[s.speaker for s in results]}")
        return results

    def _resolve_speaker(self, raw: RawSegment, offset_ms: int) -> str:
        """Match acoustically, then let a recognized name override and absorb the segment."""
        features = self._features_for(raw)
        match = self.store.match(features, offset_ms)

        name = self.recognizer.recognize_name(raw.text)
        if name:
            if name != match.label:
                log.debug(f"Name '{name}' overrides {match.label} at {offset_ms}ms")
            self.store.add_profile(name, features)
            return name

        if not match.is_placeholder:
            self.store.add_profile(match.label, features)
        return match.label

    def _features_for(self, raw: RawSegment) -> np.ndarray:
        if raw.features is not None:
            if len(raw.features) == 0:
                raise TranscriptionFailed("Malformed segment: empty feature vector")
            return np.asarray(raw.features, dtype=np.float64)
        return self.feature_extractor(raw)

    @staticmethod
    def _raw_segments(raw_result: RawResult) -> List[RawSegment]:
        if isinstance(raw_result, RawTranscription):
            return list(raw_result.segments)
        if isinstance(raw_result, Mapping):
            return parse_transcription_payload(raw_result).segments
        return list(raw_result)
