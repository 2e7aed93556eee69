"""
Interface for continuous speech recognition sessions.

A session streams interim and final transcripts for one listening cycle and
reports its lifecycle through callbacks. The alignment engine only ever talks
to this interface, so the host recognizer (Vosk, a replayed transcript, a test
double) can be swapped without touching the matching logic.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class TranscriptionResult:
    """A transcript fragment from any recognizer."""

    text: str
    is_partial: bool
    confidence: float = 1.0

    def __repr__(self) -> str:
        status: str = "partial" if self.is_partial else "final"
        return f"TranscriptionResult({status}: '{self.text}')"


@dataclass
class ModelInfo:
    """Information about a downloadable recognition model."""

    id: str  # Unique identifier (e.g., "vosk-en-us-small")
    name: str  # Display name (e.g., "English US - Small")
    language: str  # BCP 47 tag the model serves (e.g., "en-US")
    size_mb: int | None = None
    description: str | None = None


def _ignore(*_args: object) -> None:
    pass


@dataclass
class SessionCallbacks:
    """Lifecycle notifications delivered by a RecognitionSession."""

    on_start: Callable[[], None] = _ignore
    on_result: Callable[[TranscriptionResult], None] = _ignore
    on_error: Callable[[str], None] = _ignore  # error code, e.g. "no-speech"
    on_end: Callable[[], None] = _ignore
    on_level: Callable[[float], None] = _ignore  # microphone level 0-1


class RecognitionSession(ABC):
    """One continuous, interim-results-enabled recognition session."""

    language: str
    callbacks: SessionCallbacks

    def __init__(self, language: str, callbacks: SessionCallbacks) -> None:
        self.language = language
        self.callbacks = callbacks

    @abstractmethod
    def start(self) -> None:
        """
        Begin (or resume) listening.

        on_start fires once audio is flowing. Failures after this call
        returns are reported through on_error and followed by on_end.

        Raises:
            VoiceError: If the session cannot even be opened
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop listening; on_end follows once the session has wound down."""


# Factory used by the alignment engine: (language, callbacks) -> session
SessionFactory = Callable[[str, SessionCallbacks], RecognitionSession]
