# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Speech recognition backends.

The model registry is importable everywhere; the Vosk backend (which loads
native libraries) is only imported when a session factory is requested.
"""

import importlib
import logging

from ..recognition import SessionCallbacks, SessionFactory
from .models import (
    CACHE_DIR,
    DEFAULT_MODEL_ID,
    MODELS,
    available_models,
    download_model,
    get_model_path,
    is_model_downloaded,
    model_for_locale,
)

logger = logging.getLogger(__name__)

# Modules the Vosk backend needs at runtime
BACKEND_MODULES: tuple[str, ...] = ("vosk", "sounddevice")


def backend_available() -> bool:
    """True if the recognizer and audio libraries can be imported."""
    for name in BACKEND_MODULES:
        try:
            importlib.import_module(name)
        except (ImportError, OSError) as e:
            # sounddevice raises OSError when PortAudio itself is missing
            logger.info("Voice backend unavailable (%s): %s", name, e)
            return False
    return True


def is_voice_supported(
    language: str = "en-US",
    model_id: str | None = None,
    model_path: str | None = None
) -> bool:
    """
    Whether voice-following can run on this host.

    Needs the backend libraries, a downloaded model for the language (or an
    explicit model path) and at least one microphone.
    """
    if not backend_available():
        return False

    if model_path:
        if not get_model_path(model_path).exists():
            return False
    else:
        model_id = model_id or model_for_locale(language)
        if model_id is None or not is_model_downloaded(model_id):
            return False

    from ..audio import has_input_device
    return has_input_device()


def preload_model(
    language: str,
    model_id: str | None = None,
    model_path: str | None = None
) -> None:
    """
    Load the speech model ahead of the first session.

    Loading takes seconds, so call this off the event loop.

    Raises:
        CapabilityError: If the model is missing or unreadable
    """
    from .vosk_provider import load_model_for
    load_model_for(language, model_id, model_path)


def create_session_factory(
    model_id: str | None = None,
    model_path: str | None = None,
    device: int | None = None,
    chunk_ms: int = 100,
    sample_rate: int = 16000
) -> SessionFactory:
    """Build a factory that opens Vosk sessions with fixed audio settings."""
    from .vosk_provider import VoskSession

    def factory(language: str, callbacks: SessionCallbacks) -> VoskSession:
        return VoskSession(
            language,
            callbacks,
            model_id=model_id,
            model_path=model_path,
            device=device,
            chunk_ms=chunk_ms,
            sample_rate=sample_rate,
        )

    return factory


__all__ = [
    "BACKEND_MODULES",
    "CACHE_DIR",
    "DEFAULT_MODEL_ID",
    "MODELS",
    "available_models",
    "backend_available",
    "create_session_factory",
    "download_model",
    "get_model_path",
    "is_model_downloaded",
    "is_voice_supported",
    "model_for_locale",
    "preload_model",
]
