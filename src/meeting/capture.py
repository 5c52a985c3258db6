"""
Microphone capture for meeting recording.

Opens a sounddevice input stream and hands each captured block to the
registered chunk callback. Pausing stops delivery at the source; the stream
stays open so resume is immediate.
"""

import threading
from typing import Callable, Optional, Union

import numpy as np
import sounddevice as sd

from logger import get_logger
from .errors import DeviceUnavailable

log = get_logger("capture")


class MicrophoneCapture:
    """Captures 16-bit mono audio from the default (or a named) input device."""

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 1024,
        device: Optional[Union[int, str]] = None
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device

        self._stream = None
        self._callback: Optional[Callable[[np.ndarray], None]] = None
        self._paused = threading.Event()

    def on_chunk(self, callback: Callable[[np.ndarray], None]):
        """Register the receiver for captured blocks."""
        self._callback = callback

    def _find_input_device(self) -> dict:
        """Resolve the configured input device or raise DeviceUnavailable."""
        try:
            if self.device is None:
                info = sd.query_devices(kind='input')
            else:
                info = sd.query_devices(self.device, kind='input')
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"No audio input device: {e}")

        if not info or info.get('max_input_channels', 0) < 1:
            raise DeviceUnavailable("Selected device has no input channels")
        log.debug(f"Input device: {info['name']}")
        return info

    def _stream_callback(self, indata, frames, time_info, status):
        if status:
            log.debug(f"Stream status: {status}")
        if self._paused.is_set() or self._callback is None:
            return
        self._callback(indata[:, 0].copy() if indata.ndim > 1 else indata.flatten().copy())

    def acquire(self):
        """
        Open and start the input stream.

        Raises:
            DeviceUnavailable: If no input device can be opened
        """
        if self._stream is not None:
            return self._stream

        self._find_input_device()
        self._paused.clear()
        try:
            self._stream = sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                channels=1,
                dtype='int16',
                blocksize=self.block_size,
                callback=self._stream_callback
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._stream = None
            raise DeviceUnavailable(f"Could not open input stream: {e}")

        log.debug(f"Capture started ({self.sample_rate}Hz, block={self.block_size})")
        return self._stream

    def pause(self):
        self._paused.set()
        log.debug("Capture paused")

    def resume(self):
        self._paused.clear()
        log.debug("Capture resumed")

    def release(self):
        """Stop and close the stream. Safe to call when not acquired."""
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except sd.PortAudioError as e:
            log.debug(f"Error closing stream: {e}")
        self._stream = None
        self._paused.clear()
        log.debug("Capture stopped")

    def is_capturing(self) -> bool:
        return self._stream is not None and not self._paused.is_set()
