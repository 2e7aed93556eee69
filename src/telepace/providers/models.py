"""
Registry of downloadable Vosk models, keyed by model id, with the locale each
one serves. Kept free of any recognizer import so it can be used (and
tested) on hosts without Vosk installed.
"""

import logging
import os
import tempfile
import urllib.request
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..recognition import ModelInfo

logger = logging.getLogger(__name__)

CACHE_DIR: Path = Path.home() / ".cache" / "telepace" / "models"

DEFAULT_MODEL_ID: str = "vosk-en-us-small"

MODELS: dict[str, dict[str, Any]] = {
    # English US models
    "vosk-en-us-small": {
        "dir": "vosk-model-small-en-us-0.15",
        "name": "English US - Small",
        "language": "en-US",
        "size_mb": 40,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-us-0.15.zip",
    },
    "vosk-en-us-medium": {
        "dir": "vosk-model-en-us-0.22",
        "name": "English US - Medium",
        "language": "en-US",
        "size_mb": 1800,
        "url": "https://alphacephei.com/vosk/models/vosk-model-en-us-0.22.zip",
    },
    # English GB
    "vosk-en-gb-small": {
        "dir": "vosk-model-small-en-gb-0.15",
        "name": "English GB - Small",
        "language": "en-GB",
        "size_mb": 40,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-gb-0.15.zip",
    },
    "vosk-de-small": {
        "dir": "vosk-model-small-de-0.15",
        "name": "German - Small",
        "language": "de-DE",
        "size_mb": 45,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-de-0.15.zip",
    },
    "vosk-fr-small": {
        "dir": "vosk-model-small-fr-0.22",
        "name": "French - Small",
        "language": "fr-FR",
        "size_mb": 41,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-fr-0.22.zip",
    },
    "vosk-es-small": {
        "dir": "vosk-model-small-es-0.42",
        "name": "Spanish - Small",
        "language": "es-ES",
        "size_mb": 39,
        "url": "https://alphacephei.com/vosk/models/vosk-model-small-es-0.42.zip",
    },
}


def available_models() -> list[ModelInfo]:
    """Describe every model in the registry."""
    return [
        ModelInfo(
            id=model_id,
            name=info["name"],
            language=info["language"],
            size_mb=info["size_mb"],
            description=f"Vosk model - {info['name']}",
        )
        for model_id, info in MODELS.items()
    ]


def model_for_locale(locale: str) -> str | None:
    """
    Pick the smallest model for a BCP 47 locale.

    An exact tag match wins ("en-GB"), then a language match ("en-AU" -> the
    first English model). Returns None if no model serves the language.
    """
    tag: str = locale.replace("_", "-").lower()
    language: str = tag.split("-")[0]
    by_size = sorted(MODELS.items(), key=lambda item: item[1]["size_mb"])
    for model_id, info in by_size:
        if info["language"].lower() == tag:
            return model_id
    for model_id, info in MODELS.items():
        if info["language"].split("-")[0].lower() == language:
            return model_id
    return None


def get_model_path(model_id: str, cache_dir: Path | None = None) -> Path:
    """Where a model lives on disk. Unknown ids are treated as paths."""
    info = MODELS.get(model_id)
    if not info:
        return Path(model_id)
    return (cache_dir or CACHE_DIR) / info["dir"]


def is_model_downloaded(model_id: str, cache_dir: Path | None = None) -> bool:
    return get_model_path(model_id, cache_dir).exists()


def download_model(
    model_id: str,
    target_dir: str | None = None,
    progress_callback: Callable[[str, int], None] | None = None
) -> str:
    """
    Download and unpack a Vosk model.

    Args:
        model_id: Model identifier (e.g., "vosk-en-us-small")
        target_dir: Directory to save the model, or None for the cache
        progress_callback: Optional callback(stage, percent) for progress updates

    Returns:
        Path to the downloaded model as a string.

    Raises:
        ValueError: If model_id is not in the registry
    """
    model_info: dict[str, Any] | None = MODELS.get(model_id)
    if not model_info:
        raise ValueError(
            f"Unknown Vosk model: {model_id}. "
            f"Choose from: {list(MODELS.keys())}"
        )

    target_path: Path = Path(target_dir) if target_dir else CACHE_DIR
    target_path.mkdir(parents=True, exist_ok=True)
    model_path: Path = target_path / model_info["dir"]

    if model_path.exists():
        logger.info("Model already exists at %s", model_path)
        if progress_callback:
            progress_callback("complete", 100)
        return str(model_path)

    url: str = model_info["url"]
    logger.info("Downloading %s from %s", model_id, url)

    with tempfile.NamedTemporaryFile(suffix=".zip", delete=False) as tmp:
        tmp_path = tmp.name
        if progress_callback:
            progress_callback("downloading", 0)

        def download_hook(block_count: int, block_size: int, total_size: int) -> None:
            if progress_callback and total_size > 0:
                downloaded = block_count * block_size
                progress_callback("downloading", min(100, int(downloaded / total_size * 100)))

        urllib.request.urlretrieve(url, tmp_path, download_hook)

    try:
        if progress_callback:
            progress_callback("extracting", 0)
        with zipfile.ZipFile(tmp_path, "r") as zf:
            zf.extractall(target_path)
        if progress_callback:
            progress_callback("complete", 100)
    finally:
        try:
            os.unlink(tmp_path)
        except OSError as e:
            logger.warning("Could not delete temporary file %s: %s", tmp_path, e)

    logger.info("Model installed to %s", model_path)
    return str(model_path)
