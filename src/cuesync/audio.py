# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Microphone capture using sounddevice.

Audio is captured in small fixed-size chunks on PortAudio's callback thread
and handed to the recognizer through a queue.
"""

import logging
import queue
from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt
import sounddevice as sd

logger = logging.getLogger(__name__)


class AudioCapture:
    """Captures audio from the microphone in small chunks for streaming recognition."""

    sample_rate: int
    chunk_size: int
    device: int | None
    audio_queue: queue.Queue[bytes]
    stream: sd.RawInputStream | None

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_duration_ms: int = 100,
        device: int | None = None
    ) -> None:
        """
        Args:
            sample_rate: Sample rate in Hz (16000 suits Vosk)
            chunk_duration_ms: Duration of each audio chunk in milliseconds
            device: Audio device index, or None for default
        """
        self.sample_rate = sample_rate
        self.chunk_size = int(sample_rate * chunk_duration_ms / 1000)
        self.device = device
        self.audio_queue = queue.Queue()
        self.stream = None

    def _audio_callback(
        self,
        indata: npt.NDArray[np.int16],
        frames: int,
        time: Any,
        status: sd.CallbackFlags
    ) -> None:
        if status:
            logger.debug("Audio status: %s", status)
        self.audio_queue.put(bytes(indata))

    def start(self) -> None:
        """
        Start capturing audio from the microphone.

        Raises:
            sd.PortAudioError: If the device cannot be opened
        """
        if self.stream is not None:
            return
        stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            blocksize=self.chunk_size,
            device=self.device,
            dtype=np.int16,
            channels=1,
            callback=self._audio_callback
        )
        stream.start()
        self.stream = stream
        logger.info("Audio capture started (device=%s)", self.device)

    def stop(self) -> None:
        """Stop capturing audio and drop anything not yet consumed."""
        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None
        self.clear_queue()

    def get_chunk(self, timeout: float = 0.5) -> bytes | None:
        """Get the next audio chunk, or None on timeout."""
        try:
            return self.audio_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def clear_queue(self) -> None:
        while True:
            try:
                self.audio_queue.get_nowait()
            except queue.Empty:
                break


def list_devices() -> Sequence[Any]:
    """Print and return the available audio input devices."""
    print("Available audio input devices:")
    devices: Sequence[Any] = sd.query_devices()
    for i, device in enumerate(devices):
        dev: dict[str, Any] = dict(device)
        if dev.get('max_input_channels', 0) > 0:
            print(f"  [{i}] {dev.get('name', 'Unknown')} "
                  f"(inputs: {dev.get('max_input_channels', 0)})")
    return devices
