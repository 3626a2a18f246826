"""
Audio helpers for MediMind speech playback.

Synthesized speech arrives as base64 16-bit little-endian PCM. It is decoded
once into a float32 AudioBuffer and played through a process-wide
AudioContext, whose destination decides where the samples actually go.
"""

import asyncio
import base64
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import numpy as np

from medimind.config import settings
from medimind.utils.logger import get_logger

logger = get_logger("audio")


@dataclass
class AudioBuffer:
    """Decoded audio: one float32 row per channel, values in [-1, 1)."""

    channels: np.ndarray
    sample_rate: int

    @property
    def number_of_channels(self) -> int:
        return self.channels.shape[0]

    @property
    def length(self) -> int:
        return self.channels.shape[1]

    @property
    def duration(self) -> float:
        return self.length / self.sample_rate


def decode(data: str) -> bytes:
    """Decode base64 audio payload to raw bytes."""
    return base64.b64decode(data)


def decode_audio_data(data: bytes, sample_rate: int, num_channels: int) -> AudioBuffer:
    """
    Decode interleaved 16-bit PCM into an AudioBuffer.

    Raises:
        ValueError: If the byte count is not a whole number of frames
    """
    frame_bytes = 2 * num_channels
    if len(data) % frame_bytes:
        raise ValueError(
            f"PCM data length {len(data)} is not a multiple of frame size {frame_bytes}"
        )

    samples = np.frombuffer(data, dtype="<i2")
    frames = samples.reshape(-1, num_channels).T
    return AudioBuffer(
        channels=frames.astype(np.float32) / 32768.0,
        sample_rate=sample_rate,
    )


class AudioOutput(Protocol):
    """Somewhere to send samples. play() returns once playback has finished."""

    async def play(self, buffer: AudioBuffer) -> None: ...


class WavFileOutput:
    """
    Renders each buffer to a WAV file and holds for its duration.

    Only the latest rendering is kept on disk; the previous file is removed
    when a new one is written.
    """

    def __init__(self, directory: Optional[Path] = None, realtime: bool = True):
        self.directory = Path(directory) if directory is not None else settings.temp_path
        self.realtime = realtime
        self.last_path: Optional[Path] = None

    async def play(self, buffer: AudioBuffer) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"speech-{time.time_ns()}.wav"

        pcm = np.clip(buffer.channels.T * 32768.0, -32768, 32767).astype("<i2")
        try:
            with wave.open(str(path), "wb") as wf:
                wf.setnchannels(buffer.number_of_channels)
                wf.setsampwidth(2)
                wf.setframerate(buffer.sample_rate)
                wf.writeframes(pcm.tobytes())
        except Exception:
            path.unlink(missing_ok=True)
            raise

        if self.last_path != path:
            self.discard()
        self.last_path = path
        logger.info("Speech rendered", path=str(path), duration_s=round(buffer.duration, 2))
        if self.realtime:
            await asyncio.sleep(buffer.duration)

    def discard(self) -> None:
        """Delete the last rendered file, if any."""
        if self.last_path is not None:
            self.last_path.unlink(missing_ok=True)
            self.last_path = None


class AudioBufferSource:
    """
    One playback of one buffer.

    start() begins playback on the running event loop. on_ended fires when
    playback finishes or the output fails, never after stop().
    """

    def __init__(self, buffer: AudioBuffer, destination: AudioOutput):
        self.buffer = buffer
        self.destination: Optional[AudioOutput] = destination
        self.on_ended: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("AudioBufferSource can only be started once")
        if self.destination is None:
            raise RuntimeError("AudioBufferSource is disconnected")
        self._task = asyncio.get_running_loop().create_task(self._run(self.destination))

    async def _run(self, destination: AudioOutput) -> None:
        try:
            await destination.play(self.buffer)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Audio playback failed", error=str(e))
        if self.on_ended is not None:
            self.on_ended()

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def disconnect(self) -> None:
        self.destination = None


class AudioContext:
    """Creates buffer sources bound to a shared output."""

    def __init__(self, sample_rate: int, destination: Optional[AudioOutput] = None):
        self.sample_rate = sample_rate
        self.destination: AudioOutput = destination or WavFileOutput()

    def create_buffer_source(self, buffer: AudioBuffer) -> AudioBufferSource:
        return AudioBufferSource(buffer, self.destination)


_audio_context: Optional[AudioContext] = None


def get_audio_context() -> AudioContext:
    """Get or create the process-wide audio context."""
    global _audio_context
    if _audio_context is None:
        _audio_context = AudioContext(sample_rate=settings.speech_sample_rate)
    return _audio_context
