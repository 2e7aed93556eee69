"""
Error taxonomy for speech-following playback.

None of these are raised across a timer or frame boundary. The alignment
engine builds them and hands them to its error callback so the caller can
decide whether to fall back to a non-voice mode.
"""


class VoiceError(Exception):
    """Base class for recognition problems reported by the alignment engine."""

    retryable: bool = False
    code: str = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class CapabilityError(VoiceError):
    """Speech recognition is not available on this host."""

    code = "not-supported"


class UnsupportedError(CapabilityError):
    """Raised by capability probes when no recognizer can be opened."""


class MicrophonePermissionError(VoiceError):
    """The microphone could not be opened because access was denied."""

    code = "not-allowed"


class TransientSessionError(VoiceError):
    """The recognition session ended or failed unexpectedly; worth retrying."""

    retryable = True


class RecoveryExhaustedError(VoiceError):
    """Automatic restarts gave up after too many consecutive failures."""

    code = "recovery-exhausted"


# Error codes reported by recognition sessions
NO_SPEECH: str = "no-speech"
PERMISSION_CODES: frozenset[str] = frozenset(["not-allowed", "service-not-allowed"])
UNSUPPORTED_CODES: frozenset[str] = frozenset(["not-supported", "language-not-supported"])


def error_from_code(code: str) -> VoiceError | None:
    """
    Map a session error code to the matching exception type.

    Returns None for "no-speech", which just means the speaker was silent.
    """
    if code == NO_SPEECH:
        return None
    if code in PERMISSION_CODES:
        return MicrophonePermissionError("Microphone permission denied", code)
    if code in UNSUPPORTED_CODES:
        return CapabilityError(f"Speech recognition unavailable: {code}", code)
    return TransientSessionError(f"Speech recognition error: {code}", code)
