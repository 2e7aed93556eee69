"""
Vosk speech recognition backend.

VoskRecognizer turns 16-bit PCM chunks into partial and final transcripts.
VoskSession wraps it, together with microphone capture, as a continuous
RecognitionSession driven from the asyncio event loop.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import sounddevice as sd
from vosk import KaldiRecognizer, Model, SetLogLevel

from ..audio import AudioCapture, rms_level
from ..errors import CapabilityError, TransientSessionError
from ..recognition import RecognitionSession, SessionCallbacks, TranscriptionResult
from .models import get_model_path, model_for_locale

logger = logging.getLogger(__name__)

# Suppress Vosk's verbose logging
SetLogLevel(-1)

# Loaded models, keyed by path; loading a model takes seconds
_MODEL_CACHE: dict[str, Model] = {}


def load_model(model_path: Path) -> Model:
    key: str = str(model_path)
    if key not in _MODEL_CACHE:
        logger.info("Loading Vosk model from %s", model_path)
        _MODEL_CACHE[key] = Model(key)
    return _MODEL_CACHE[key]


def resolve_model_path(language: str, model_id: str | None = None,
                       model_path: str | None = None) -> Path:
    """
    Raises:
        CapabilityError: If no model serves the language or it is missing
    """
    if model_path:
        path = Path(model_path)
    else:
        model_id = model_id or model_for_locale(language)
        if model_id is None:
            raise CapabilityError(
                f"No speech model for language {language}",
                "language-not-supported")
        path = get_model_path(model_id)
        if not path.exists():
            raise CapabilityError(
                f"Speech model not downloaded. Run: telepace --download-model {model_id}")
    if not path.exists():
        raise CapabilityError(f"Speech model not found at {path}")
    return path


def load_model_for(language: str, model_id: str | None = None,
                   model_path: str | None = None) -> Model:
    """Resolve and load (or fetch from cache) the model for a language."""
    path = resolve_model_path(language, model_id, model_path)
    try:
        return load_model(path)
    except Exception as e:
        # vosk raises a bare Exception when the model cannot be read
        raise CapabilityError(f"Could not load speech model: {e}") from e


class VoskRecognizer:
    """Streaming recognizer over one Vosk model."""

    sample_rate: int
    model: Model
    recognizer: KaldiRecognizer

    def __init__(self, model: Model, sample_rate: int = 16000) -> None:
        self.sample_rate = sample_rate
        self.model = model
        self.reset()

    def process_audio(self, audio_data: bytes) -> TranscriptionResult | None:
        """
        Process an audio chunk and return transcription result.

        Args:
            audio_data: Raw audio bytes (16-bit PCM, mono)

        Returns:
            TranscriptionResult with partial or final text, or None if no speech
        """
        if self.recognizer.AcceptWaveform(audio_data):
            # Final result - speech segment complete
            return self._final_from(json.loads(self.recognizer.Result()))

        result: dict[str, Any] = json.loads(self.recognizer.PartialResult())
        text: str = result.get("partial", "").strip()
        if text and not self._is_vosk_artifact(text):
            return TranscriptionResult(text, is_partial=True)
        return None

    def reset(self) -> None:
        """Reset the recognizer state (e.g., after a long pause)."""
        self.recognizer = KaldiRecognizer(self.model, self.sample_rate)
        self.recognizer.SetWords(True)

    def get_final(self) -> TranscriptionResult | None:
        """Get any remaining buffered speech as final result."""
        return self._final_from(json.loads(self.recognizer.FinalResult()))

    def _final_from(self, result: dict[str, Any]) -> TranscriptionResult | None:
        text: str = result.get("text", "").strip()
        if not text or self._is_vosk_artifact(text):
            return None
        return TranscriptionResult(text, is_partial=False,
                                   confidence=self._confidence(result))

    @staticmethod
    def _confidence(result: dict[str, Any]) -> float:
        """Mean per-word confidence, when SetWords supplied it."""
        words: list[dict[str, Any]] = result.get("result", [])
        scores: list[float] = [float(w["conf"]) for w in words if "conf" in w]
        if not scores:
            return 1.0
        return sum(scores) / len(scores)

    @staticmethod
    def _is_vosk_artifact(text: str) -> bool:
        """Vosk sometimes returns "the" when there's no valid sound input."""
        return text.lower() == "the"


class VoskSession(RecognitionSession):
    """Microphone + Vosk recognition session pumped on the event loop."""

    def __init__(
        self,
        language: str,
        callbacks: SessionCallbacks,
        model_id: str | None = None,
        model_path: str | None = None,
        device: int | None = None,
        chunk_ms: int = 100,
        sample_rate: int = 16000,
        loop: asyncio.AbstractEventLoop | None = None
    ) -> None:
        super().__init__(language, callbacks)
        self.model_id = model_id
        self.model_path = model_path
        self.device = device
        self.chunk_ms = chunk_ms
        self.sample_rate = sample_rate
        self.loop = loop
        self.audio: AudioCapture | None = None
        self.recognizer: VoskRecognizer | None = None
        self._running: bool = False
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._running:
            return

        model = load_model_for(self.language, self.model_id, self.model_path)
        self.recognizer = VoskRecognizer(model, self.sample_rate)

        self.audio = AudioCapture(self.sample_rate, self.chunk_ms, self.device)
        try:
            self.audio.start()
        except sd.PortAudioError as e:
            self.audio = None
            raise TransientSessionError(
                f"Could not open microphone: {e}", "audio-capture") from e

        self._running = True
        loop = self.loop or asyncio.get_event_loop()
        self._task = loop.create_task(self._pump())

    def stop(self) -> None:
        self._running = False

    async def _pump(self) -> None:
        assert self.audio is not None and self.recognizer is not None
        loop = asyncio.get_running_loop()
        self.callbacks.on_start()
        try:
            while self._running:
                chunk = await loop.run_in_executor(None, self.audio.get_chunk, 0.1)
                if chunk is None or not self._running:
                    continue
                self.callbacks.on_level(rms_level(chunk))
                result = self.recognizer.process_audio(chunk)
                if result is not None:
                    self.callbacks.on_result(result)

            final = self.recognizer.get_final()
            if final is not None:
                self.callbacks.on_result(final)
        except sd.PortAudioError as e:
            logger.error("Audio capture failed: %s", e)
            self.callbacks.on_error("audio-capture")
        except Exception:
            logger.exception("Recognition session failed")
            self.callbacks.on_error("session-crash")
        finally:
            self._running = False
            self.audio.stop()
            self.audio = None
            self._task = None
            self.callbacks.on_end()
