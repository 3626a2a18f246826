"""
Read-aloud toggle for chat answers.

Each answer owns one SpeechToggle cycling idle -> loading -> playing -> idle.
"""

import binascii
from enum import Enum
from typing import Optional, Protocol

from medimind.core.audio import (
    AudioBufferSource,
    AudioContext,
    decode,
    decode_audio_data,
    get_audio_context,
)
from medimind.models.schemas import Voice
from medimind.utils.logger import get_logger

logger = get_logger("speech")


class SpeechState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"


class SpeechClient(Protocol):
    async def generate_speech(self, text: str, voice: Voice) -> Optional[str]: ...


class SpeechToggle:
    """
    Plays an answer aloud, or stops it.

    Toggling while loading does nothing; toggling while playing stops.
    At most one source is kept live, and it is stopped and disconnected
    before a new one starts.
    """

    def __init__(
        self,
        text: str,
        voice: Voice,
        client: SpeechClient,
        audio_context: Optional[AudioContext] = None
    ):
        self.text = text
        self.voice = Voice(voice)
        self.client = client
        self._audio_context = audio_context
        self._source: Optional[AudioBufferSource] = None
        self._closed = False
        self.state = SpeechState.IDLE

    @property
    def audio_context(self) -> AudioContext:
        if self._audio_context is None:
            self._audio_context = get_audio_context()
        return self._audio_context

    def stop(self) -> None:
        """Stop and release the live source, if any."""
        if self._source is not None:
            self._source.stop()
            self._source.disconnect()
            self._source = None
        self.state = SpeechState.IDLE

    async def toggle(self) -> SpeechState:
        """Start or stop reading the text aloud; returns the new state."""
        if self.state == SpeechState.PLAYING:
            self.stop()
            return self.state
        if self.state == SpeechState.LOADING or self._closed:
            return self.state

        self.state = SpeechState.LOADING
        base64_audio = await self.client.generate_speech(self.text, self.voice)

        if self._closed:
            self.state = SpeechState.IDLE
            return self.state

        if not base64_audio:
            logger.error("Failed to generate speech audio", voice=self.voice.value)
            self.state = SpeechState.IDLE
            return self.state

        try:
            ctx = self.audio_context
            buffer = decode_audio_data(decode(base64_audio), ctx.sample_rate, 1)
        except (binascii.Error, ValueError) as e:
            logger.error("Error decoding speech audio", error=str(e))
            self.state = SpeechState.IDLE
            return self.state

        if self._source is not None:
            self.stop()

        source = ctx.create_buffer_source(buffer)
        source.on_ended = lambda: self._handle_ended(source)
        source.start()
        self._source = source
        self.state = SpeechState.PLAYING
        logger.info("Speech playing", voice=self.voice.value, duration_s=round(buffer.duration, 2))
        return self.state

    def _handle_ended(self, source: AudioBufferSource) -> None:
        if self._source is source:
            self._source = None
            self.state = SpeechState.IDLE

    def close(self) -> None:
        """Release audio resources when the answer goes away; later toggles do nothing."""
        self._closed = True
        self.stop()
