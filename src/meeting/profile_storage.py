"""
Voice profile persistence.

Profiles are saved as a single .npz file (names, vectors, counts) so they
survive restarts. Writes go to a temp file first and are renamed into place.
"""

import os
from pathlib import Path
from typing import Dict, Union

import numpy as np

from logger import get_logger, log_error
from .profiles import VoiceProfileStore

log = get_logger("profile_storage")


class ProfileStorage:
    """Loads and saves a VoiceProfileStore to an .npz file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Dict[str, dict]:
        """
        Read the persisted mapping.

        Returns:
            Dict mapping speaker name to {feature_vector, sample_count},
            in the order the profiles were created. Empty if no file exists.
        """
        if not self.path.exists():
            return {}

        with np.load(self.path, allow_pickle=False) as data:
            names = [str(n) for n in data["names"]]
            vectors = data["vectors"]
            counts = data["counts"]

        if len(names) != len(vectors) or len(names) != len(counts):
            raise ValueError(f"Corrupt profile file {self.path}: array lengths differ")

        return {
            name: {"feature_vector": vectors[i], "sample_count": int(counts[i])}
            for i, name in enumerate(names)
        }

    def load_into(self, store: VoiceProfileStore) -> int:
        """Load persisted profiles into ``store``. Returns the number loaded."""
        mapping = self.load()
        if mapping:
            store.load_mapping(mapping)
        log.debug(f"Loaded {len(mapping)} profiles from {self.path}")
        return len(mapping)

    def save(self, mapping: Dict[str, dict]):
        """Write the mapping atomically. An empty mapping removes the file."""
        if not mapping:
            if self.path.exists():
                self.path.unlink()
                log.debug(f"No profiles left, deleted {self.path}")
            return

        names = list(mapping.keys())
        vectors = np.array([np.asarray(mapping[n]["feature_vector"], dtype=np.float64) for n in names])
        counts = np.array([int(mapping[n]["sample_count"]) for n in names], dtype=np.int64)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + ".tmp")
        with open(temp_path, "wb") as f:
            np.savez(f, names=np.array(names), vectors=vectors, counts=counts)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(self.path)  # Atomic rename
        log.debug(f"Saved {len(names)} profiles to {self.path}")

    def save_from(self, store: VoiceProfileStore) -> bool:
        """Persist the current store. Returns False (and logs) if the write fails."""
        try:
            self.save(store.to_mapping())
            return True
        except OSError as e:
            log_error(f"Failed to save voice profiles to {self.path}", e)
            return False
