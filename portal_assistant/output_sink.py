"""
SPEECH OUTPUT CHANNEL

Unified output routing for spoken responses. Non-blocking, one utterance at a time.

Core semantics:
- send(text: str) -> synthesize and play; a newer send() cancels the one in flight
- stop() -> halt any active utterance (idempotent, never raises)

Pipeline per utterance:
    text -> SpeechSynthesizer (network) -> audio bytes -> AudioPlayer (playback wait)

Both stages are awaited on the event loop; blocking HTTP runs on the default
executor so input processing continues while audio is fetched.

Failure policy:
- Synthesis/playback errors are logged and published as a FAILED SpeechEvent
- They never propagate to the caller (the user simply hears nothing)

Configuration (see portal_assistant.config):
- tts.enabled / VOICE_ENABLED: disable audio entirely (SilentOutputSink)
- tts.engine / PORTAL_TTS_ENGINE: "http" | "edge" | "silent"
- tts.base_url, tts.voice: POST {base_url}/api/tts/{voice}
"""

# ============================================================================
# 1) IMPORTS
# ============================================================================
import asyncio
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import requests

from portal_assistant.policy import (
    AUDIO_PLAYBACK_TIMEOUT_SECONDS,
    AUDIO_POLL_INTERVAL_SECONDS,
    TTS_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


# ============================================================================
# 2) STATUS SIGNAL
# ============================================================================

class SpeechStatus(Enum):
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class SpeechEvent:
    """Published to listeners for every utterance state change."""
    status: SpeechStatus
    text: str
    error: Optional[str] = None


SpeechListener = Callable[[SpeechEvent], None]


# ============================================================================
# 3) OUTPUT SINK INTERFACE
# ============================================================================

class OutputSink(ABC):
    """
    Abstract base class for speech output.

    Implementations must provide:
    - send(text: str) -> speak text
    - stop() -> halt any active output (idempotent, instant)

    Implementations should be:
    - Non-blocking (use async/await, not time.sleep)
    - Cancellation-safe (handle asyncio.CancelledError gracefully)
    """

    @property
    def is_speaking(self) -> bool:
        """True while an utterance is in flight. Sinks without playback state never are."""
        return False

    @abstractmethod
    async def send(self, text: str) -> None:
        """
        Speak text.

        Returns when the utterance finished, failed, or was superseded.

        Args:
            text: Text content to speak
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop any active utterance.

        - If audio playing: halt immediately
        - If nothing playing: no-op
        - Never raises
        """
        pass


class SilentOutputSink(OutputSink):
    """
    Voice disabled.

    - send(text) -> no-op (text discarded)
    - stop() -> no-op
    """

    async def send(self, text: str) -> None:
        logger.debug(f"[TTS] Silent: '{text[:60]}'")

    async def stop(self) -> None:
        pass


# ============================================================================
# 4) SYNTHESIZERS (text -> audio bytes)
# ============================================================================

class SpeechSynthesizer(ABC):
    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Return an encoded audio blob for text. Raises on failure."""
        pass


class HttpSpeechSynthesizer(SpeechSynthesizer):
    """
    Portal TTS endpoint.

    POST {base_url}/api/tts/{voice} with JSON {"text": ...}; the response
    body is the audio blob. Non-2xx raises requests.HTTPError.
    """

    def __init__(
        self,
        base_url: str,
        voice: str,
        timeout: float = TTS_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.voice = voice
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/tts/{self.voice}"

    def _post(self, text: str) -> bytes:
        response = self.session.post(self.url, json={"text": text}, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    async def synthesize(self, text: str) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._post, text)


class EdgeSpeechSynthesizer(SpeechSynthesizer):
    """
    Microsoft Edge neural voices via the edge-tts package.

    Args:
        voice: Microsoft neural voice name (default: "en-US-AriaNeural")
    """

    def __init__(self, voice: str = "en-US-AriaNeural"):
        self.voice = voice

    async def synthesize(self, text: str) -> bytes:
        import edge_tts

        # Edge-TTS wants rate/pitch/volume as strings with units
        communicate = edge_tts.Communicate(
            text=text,
            voice=self.voice,
            rate="+0%",
            pitch="+0Hz",
            volume="+0%",
        )
        chunks = []
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                chunks.append(chunk["data"])
        if not chunks:
            raise RuntimeError("edge-tts returned no audio")
        return b"".join(chunks)


# ============================================================================
# 5) PLAYERS (audio bytes -> speaker)
# ============================================================================

class AudioPlayer(ABC):
    @abstractmethod
    async def play(self, audio: bytes) -> None:
        """Play the blob; returns when playback ends. Cancellable."""
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class NullAudioPlayer(AudioPlayer):
    """Discards audio (tests, headless hosts)."""

    async def play(self, audio: bytes) -> None:
        logger.debug(f"[Audio] Discarding {len(audio)} bytes")

    def stop(self) -> None:
        pass


class SoundDeviceAudioPlayer(AudioPlayer):
    """
    Decode with pydub (ffmpeg), play with sounddevice.

    Playback is polled with asyncio.sleep so cancellation lands within one
    poll interval. Requires the "audio" extra.
    """

    def __init__(self, poll_interval: float = AUDIO_POLL_INTERVAL_SECONDS,
                 timeout: float = AUDIO_PLAYBACK_TIMEOUT_SECONDS):
        self.poll_interval = poll_interval
        self.timeout = timeout

    @staticmethod
    def _decode(audio: bytes):
        import numpy as np
        from pydub import AudioSegment

        segment = AudioSegment.from_file(io.BytesIO(audio))
        samples = np.array(segment.get_array_of_samples())
        if segment.channels > 1:
            samples = samples.reshape((-1, segment.channels))
        samples = samples.astype(np.float32) / (1 << (8 * segment.sample_width - 1))

        # Normalize to prevent clipping
        peak = float(np.max(np.abs(samples))) if samples.size else 0.0
        if peak > 0:
            samples = samples * (0.8 / peak)
        return samples, segment.frame_rate

    async def play(self, audio: bytes) -> None:
        import sounddevice as sd

        samples, sample_rate = self._decode(audio)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        sd.play(samples, samplerate=sample_rate, blocking=False)
        try:
            while loop.time() < deadline:
                stream = sd.get_stream()
                if not stream or not stream.active:
                    return
                await asyncio.sleep(self.poll_interval)
            logger.warning(f"[Audio] Playback exceeded {self.timeout}s, stopping")
            self.stop()
        except asyncio.CancelledError:
            self.stop()
            raise

    def stop(self) -> None:
        try:
            import sounddevice as sd
            sd.stop()
        except Exception as e:
            logger.debug(f"[Audio] stop: {e}")


# ============================================================================
# 6) SPEECH SINK (one utterance at a time)
# ============================================================================

class SpeechOutputSink(OutputSink):
    """
    Serialized speech: at most one active utterance.

    send() cancels whatever is in flight, then speaks. A send() that is
    superseded by a newer one returns normally (its utterance is reported
    as CANCELLED).
    """

    def __init__(self, synthesizer: SpeechSynthesizer, player: Optional[AudioPlayer] = None):
        self.synthesizer = synthesizer
        self.player = player or NullAudioPlayer()
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[SpeechListener] = []

    def add_listener(self, listener: SpeechListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SpeechListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def is_speaking(self) -> bool:
        return self._task is not None and not self._task.done()

    def _publish(self, event: SpeechEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"[TTS] Listener failed on {event.status.value}: {e}")

    async def _speak(self, text: str) -> None:
        self._publish(SpeechEvent(SpeechStatus.STARTED, text))
        try:
            audio = await self.synthesizer.synthesize(text)
            await self.player.play(audio)
        except asyncio.CancelledError:
            self.player.stop()
            logger.info(f"[TTS] Cancelled: '{text[:60]}'")
            self._publish(SpeechEvent(SpeechStatus.CANCELLED, text))
            raise
        except Exception as e:
            logger.warning(f"[TTS] Speech failed: {type(e).__name__}: {e}")
            self._publish(SpeechEvent(SpeechStatus.FAILED, text, error=str(e)))
            return
        self._publish(SpeechEvent(SpeechStatus.COMPLETED, text))

    async def _cancel_current(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    async def send(self, text: str) -> None:
        if not text or not text.strip():
            return

        await self._cancel_current()

        task = asyncio.create_task(self._speak(text))
        self._task = task
        # wait() does not raise when the task is cancelled by a newer send()
        await asyncio.wait({task})
        if self._task is task:
            self._task = None

    async def stop(self) -> None:
        await self._cancel_current()


# ============================================================================
# 7) FACTORY
# ============================================================================

def build_output_sink(config=None, player: Optional[AudioPlayer] = None) -> OutputSink:
    """
    Build the sink described by config (tts.* keys).

    Args:
        config: Config instance (defaults to get_config())
        player: AudioPlayer override (defaults to SoundDeviceAudioPlayer)
    """
    if config is None:
        from portal_assistant.config import get_config
        config = get_config()

    engine = str(config.get("tts.engine", "http")).lower()
    if not config.get("tts.enabled", True) or engine == "silent":
        logger.info("[TTS] Voice disabled, using SilentOutputSink")
        return SilentOutputSink()

    if engine == "edge":
        synthesizer = EdgeSpeechSynthesizer(voice=config.get("tts.edge_voice", "en-US-AriaNeural"))
    else:
        if engine != "http":
            logger.warning(f"[TTS] Unknown engine '{engine}', using http")
        synthesizer = HttpSpeechSynthesizer(
            base_url=config.get("tts.base_url", "http://localhost:3000"),
            voice=config.get("tts.voice", "rachel"),
            timeout=config.get("tts.timeout_seconds", TTS_TIMEOUT_SECONDS),
        )

    logger.info(f"[TTS] Engine: {engine}")
    return SpeechOutputSink(synthesizer, player or SoundDeviceAudioPlayer())
