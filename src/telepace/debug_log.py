"""
Debug logging for speech alignment.

Writes one file, logs/alignment.log, recording each final transcript, the
line it was matched to and every recognition session lifecycle event. Useful
for working out why the prompter followed (or failed to follow) a speaker.

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

# Log files location (in the current working directory)
LOG_DIR: Path = Path.cwd() / "logs"
ALIGNMENT_LOG: Path = LOG_DIR / "alignment.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _write(line: str) -> None:
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Truncate the alignment log for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(ALIGNMENT_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_transcript(transcript: str, is_partial: bool) -> None:
    """Log a transcript fragment as received from the recognizer."""
    if not _ENABLED:
        return
    kind: str = "partial" if is_partial else "final"
    _write(f"{kind:8} \"{transcript[-60:]}\"")


def log_match(
    anchor_line: int,
    matched_line: int | None,
    word: str,
    score: int,
    moved: bool
) -> None:
    """
    Log the outcome of aligning one final transcript.

    Args:
        anchor_line: The last matched line before this transcript
        matched_line: The winning line, or None if nothing matched
        word: The spoken word that produced the winning candidate
        score: The winning candidate's score
        moved: Whether the anchor moved (and a scroll event was emitted)
    """
    if not _ENABLED:
        return
    if matched_line is None:
        _write(f"no_match        anchor={anchor_line:4d}")
        return
    event: str = "MOVE" if moved else "hold"
    _write(
        f"{event:15} anchor={anchor_line:4d} line={matched_line:4d} "
        f"score={score:3d} word=\"{word}\"")


def log_session_event(event: str, detail: str = "") -> None:
    """Log a recognition session lifecycle event (start, end, restart, error)."""
    if not _ENABLED:
        return
    _write(f"SESSION {event}" + (f": {detail}" if detail else ""))
