# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Audio capture module using sounddevice for low-latency microphone input.
Captures audio in small chunks for the speech recognizer and reports a
rough input level for the microphone meter.
"""

import logging
import queue
from collections.abc import Sequence
from typing import Any

import numpy as np
import sounddevice as sd

logger = logging.getLogger(__name__)

# Scales RMS of normal speech (roughly -20 dBFS) towards the top of the meter
LEVEL_GAIN: float = 5.0


def rms_level(audio_data: bytes) -> float:
    """Microphone level in [0, 1] for a chunk of 16-bit mono PCM."""
    samples = np.frombuffer(audio_data, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    rms: float = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    return min(1.0, rms / 32768.0 * LEVEL_GAIN)


class AudioCapture:
    """Captures audio from the microphone in small chunks for streaming transcription."""

    sample_rate: int
    chunk_duration_ms: int
    chunk_size: int
    device: int | None
    audio_queue: queue.Queue[bytes]
    stream: sd.RawInputStream | None
    running: bool

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_duration_ms: int = 100,
        device: int | None = None
    ) -> None:
        """
        Initialize audio capture.

        Args:
            sample_rate: Sample rate in Hz (16000 is optimal for Vosk)
            chunk_duration_ms: Duration of each audio chunk in milliseconds
            device: Audio device index, or None for default
        """
        self.sample_rate = sample_rate
        self.chunk_duration_ms = chunk_duration_ms
        self.chunk_size = int(sample_rate * chunk_duration_ms / 1000)
        self.device = device

        self.audio_queue = queue.Queue()
        self.stream = None
        self.running = False

    def _audio_callback(
        self,
        indata: Any,
        frames: int,
        time: Any,
        status: sd.CallbackFlags
    ) -> None:
        """Called from the PortAudio thread for each chunk."""
        if status:
            logger.debug("Audio status: %s", status)
        self.audio_queue.put(bytes(indata))

    def start(self) -> None:
        """
        Start capturing audio from the microphone.

        Raises:
            sd.PortAudioError: If the input stream cannot be opened
        """
        if self.running:
            return

        self.stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            blocksize=self.chunk_size,
            device=self.device,
            dtype='int16',
            channels=1,
            callback=self._audio_callback
        )
        self.stream.start()
        self.running = True
        logger.info("Audio capture started (device=%s, %d Hz)",
                    self.device if self.device is not None else "default",
                    self.sample_rate)

    def stop(self) -> None:
        """Stop capturing audio."""
        self.running = False
        if self.stream:
            self.stream.stop()
            self.stream.close()
            self.stream = None

    def get_chunk(self, timeout: float = 0.5) -> bytes | None:
        """
        Get the next audio chunk.

        Args:
            timeout: Maximum time to wait for a chunk

        Returns:
            Audio data as bytes, or None if timeout
        """
        try:
            return self.audio_queue.get(timeout=timeout)
        except queue.Empty:
            return None


def input_devices() -> list[dict[str, Any]]:
    """Audio devices with at least one input channel."""
    devices: Sequence[Any] = sd.query_devices()
    found: list[dict[str, Any]] = []
    for i, device in enumerate(devices):
        dev: dict[str, Any] = dict(device)
        if dev.get('max_input_channels', 0) > 0:
            found.append({
                "index": i,
                "name": dev.get('name', 'Unknown'),
                "channels": dev.get('max_input_channels', 0),
            })
    return found


def has_input_device() -> bool:
    """True if at least one microphone is available."""
    try:
        return bool(input_devices())
    except sd.PortAudioError as e:
        logger.warning("Could not query audio devices: %s", e)
        return False


def list_devices() -> list[dict[str, Any]]:
    """Print available audio input devices."""
    print("Available audio input devices:")
    devices = input_devices()
    for dev in devices:
        print(f"  [{dev['index']}] {dev['name']} (inputs: {dev['channels']})")
    return devices
