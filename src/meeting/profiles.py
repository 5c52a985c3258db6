"""
Voice profiles and nearest-match speaker lookup.

A profile is a running centroid of the feature vectors of every segment
attributed to one speaker. Matching uses cosine similarity; a segment whose
best score stays below the acceptance threshold gets a placeholder label
("Participant N") that is never stored.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from logger import get_logger
from .errors import DimensionMismatch

log = get_logger("profiles")

Features = Union[Sequence[float], np.ndarray]

DEFAULT_SIMILARITY_THRESHOLD = 0.9
DEFAULT_PLACEHOLDER_PREFIX = "Participant"
DEFAULT_PLACEHOLDER_POOL_SIZE = 4
DEFAULT_PLACEHOLDER_WINDOW_MS = 30000


@dataclass
class VoiceProfile:
    """A named speaker centroid."""
    name: str
    feature_vector: np.ndarray
    sample_count: int = 1

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "feature_vector": [float(v) for v in self.feature_vector],
            "sample_count": self.sample_count
        }


@dataclass(frozen=True)
class SpeakerMatch:
    """Outcome of a profile lookup."""
    label: str
    score: float
    is_placeholder: bool


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity, defined as 0.0 when either vector has zero norm."""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


class VoiceProfileStore:
    """
    Maintains named voice profiles and resolves feature vectors to speakers.

    Profiles are kept in creation order, which is also the tie-break order
    for equal similarity scores. All access goes through ``lock`` so a
    segmentation pass can hold it across its reads and merges.

    Usage:
        store = VoiceProfileStore(similarity_threshold=0.9)
        store.add_profile("Ana", [1.0, 0.0])
        store.identify_most_similar_speaker([0.99, 0.01], timestamp=0)  # "Ana"
    """

    def __init__(
        self,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        dimension: Optional[int] = None,
        placeholder_prefix: str = DEFAULT_PLACEHOLDER_PREFIX,
        placeholder_pool_size: int = DEFAULT_PLACEHOLDER_POOL_SIZE,
        placeholder_window_ms: int = DEFAULT_PLACEHOLDER_WINDOW_MS
    ):
        if placeholder_pool_size < 1:
            raise ValueError("placeholder_pool_size must be at least 1")
        if placeholder_window_ms < 1:
            raise ValueError("placeholder_window_ms must be at least 1")

        self.similarity_threshold = similarity_threshold
        self.placeholder_prefix = placeholder_prefix
        self.placeholder_pool_size = placeholder_pool_size
        self.placeholder_window_ms = placeholder_window_ms
        self.lock = threading.RLock()

        self._configured_dimension = dimension
        self._profiles: Dict[str, VoiceProfile] = {}  # insertion order = creation order

    @property
    def dimension(self) -> Optional[int]:
        """Feature dimensionality, from config or from the first profile."""
        if self._configured_dimension is not None:
            return self._configured_dimension
        with self.lock:
            for profile in self._profiles.values():
                return len(profile.feature_vector)
        return None

    def __len__(self) -> int:
        with self.lock:
            return len(self._profiles)

    def __contains__(self, name: str) -> bool:
        with self.lock:
            return name in self._profiles

    def get_profile(self, name: str) -> Optional[VoiceProfile]:
        """Get a copy of a profile by name."""
        with self.lock:
            profile = self._profiles.get(name)
            if profile is None:
                return None
            return VoiceProfile(profile.name, profile.feature_vector.copy(), profile.sample_count)

    def list_profiles(self) -> List[str]:
        """List profile names in creation order."""
        with self.lock:
            return list(self._profiles.keys())

    def placeholder_label(self, timestamp: float) -> str:
        """Placeholder label for an unmatched segment starting at ``timestamp`` ms."""
        index = (int(timestamp) // self.placeholder_window_ms) % self.placeholder_pool_size
        return f"{self.placeholder_prefix} {index + 1}"

    def match(self, features: Features, timestamp: float) -> SpeakerMatch:
        """
        Find the best-matching profile for a feature vector.

        Args:
            features: Feature vector of the segment
            timestamp: Segment start offset in milliseconds (seeds the placeholder)

        Returns:
            SpeakerMatch with the profile name, or a placeholder when no profile
            reaches the similarity threshold

        Raises:
            DimensionMismatch: If the store has profiles of a different dimensionality
        """
        vector = self._as_vector(features)

        with self.lock:
            if not self._profiles:
                label = self.placeholder_label(timestamp)
                log.debug(f"Empty store -> placeholder {label}")
                return SpeakerMatch(label=label, score=0.0, is_placeholder=True)

            self._check_dimension(vector)

            best_match = None
            best_score = -1.0
            scores = []
            for name, profile in self._profiles.items():
                score = cosine_similarity(vector, profile.feature_vector)
                scores.append(f"{name}={score:.3f}")
                # Strictly greater: the earliest profile wins a tie
                if score > best_score:
                    best_score = score
                    best_match = name

        if best_match is not None and best_score >= self.similarity_threshold:
            log.debug(f"Scores: {', '.join(scores[:5])} -> MATCHED {best_match}")
            return SpeakerMatch(label=best_match, score=best_score, is_placeholder=False)

        label = self.placeholder_label(timestamp)
        log.debug(f"Scores: {', '.join(scores[:5])} -> NO MATCH, placeholder {label}")
        return SpeakerMatch(label=label, score=max(best_score, 0.0), is_placeholder=True)

    def identify_most_similar_speaker(self, features: Features, timestamp: float) -> str:
        """Resolve a feature vector to a profile name or a placeholder label."""
        return self.match(features, timestamp).label

    def add_profile(self, name: str, features: Features) -> VoiceProfile:
        """
        Create a profile or fold a new sample into an existing one.

        Existing profiles are updated by incremental mean:
        new = old + (features - old) / (sample_count + 1)

        Args:
            name: Speaker name
            features: Feature vector of the new sample

        Returns:
            A copy of the updated profile

        Raises:
            DimensionMismatch: If the vector does not match the store's dimensionality
        """
        if not name or not name.strip():
            raise ValueError("Profile name must not be empty")
        vector = self._as_vector(features)

        with self.lock:
            self._check_dimension(vector, name)

            profile = self._profiles.get(name)
            if profile is None:
                profile = VoiceProfile(name=name, feature_vector=vector.copy(), sample_count=1)
                self._profiles[name] = profile
                log.debug(f"Created profile '{name}' (dim={len(vector)})")
            else:
                count = profile.sample_count
                profile.feature_vector = profile.feature_vector + (vector - profile.feature_vector) / (count + 1)
                profile.sample_count = count + 1
                log.debug(f"Updated profile '{name}' (n={profile.sample_count})")

            return VoiceProfile(profile.name, profile.feature_vector.copy(), profile.sample_count)

    def remove_profile(self, name: str) -> bool:
        """Remove a profile (explicit external delete)."""
        with self.lock:
            if name not in self._profiles:
                log.debug(f"Profile not found: {name}")
                return False
            del self._profiles[name]
            log.debug(f"Removed profile: {name}")
            return True

    def to_mapping(self) -> Dict[str, dict]:
        """Snapshot as name -> {feature_vector, sample_count}, in creation order."""
        with self.lock:
            return {
                name: {
                    "feature_vector": profile.feature_vector.copy(),
                    "sample_count": profile.sample_count
                }
                for name, profile in self._profiles.items()
            }

    def load_mapping(self, mapping: Dict[str, dict]):
        """Replace all profiles with a persisted mapping."""
        profiles: Dict[str, VoiceProfile] = {}
        dimension = self._configured_dimension
        for name, data in mapping.items():
            vector = self._as_vector(data["feature_vector"])
            count = int(data.get("sample_count", 1))
            if count < 1:
                raise ValueError(f"Profile '{name}' has sample_count {count}")
            if dimension is None:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise DimensionMismatch(dimension, len(vector), name)
            profiles[name] = VoiceProfile(name=name, feature_vector=vector, sample_count=count)

        with self.lock:
            self._profiles = profiles
        log.debug(f"Loaded {len(profiles)} profiles: {list(profiles.keys())}")

    def _check_dimension(self, vector: np.ndarray, name: Optional[str] = None):
        expected = self.dimension
        if expected is not None and len(vector) != expected:
            log.debug(f"Dimension mismatch: expected {expected}, got {len(vector)}")
            raise DimensionMismatch(expected, len(vector), name)

    @staticmethod
    def _as_vector(features: Features) -> np.ndarray:
        vector = np.asarray(features, dtype=np.float64).flatten()
        if vector.size == 0:
            raise ValueError("Feature vector must not be empty")
        return vector
