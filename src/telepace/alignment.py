"""
Speech-to-script alignment.

Aligns final transcripts from a continuous recognition session against the
script index, moving a line anchor forward as the speaker reads. Keeps the
recognition session alive across unexpected ends with exponential backoff,
and gives up after a bounded number of consecutive failures.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from . import debug_log
from .errors import (
    RecoveryExhaustedError,
    TransientSessionError,
    UnsupportedError,
    VoiceError,
    error_from_code,
)
from .fuzzy import FuzzyMatcher
from .recognition import (
    RecognitionSession,
    SessionCallbacks,
    SessionFactory,
    TranscriptionResult,
)
from .scheduler import Scheduler, TimerSlot
from .script_index import ScriptIndex, normalize_word

logger = logging.getLogger(__name__)

# Lines searched forward from the anchor
SEARCH_WINDOW_SIZE: int = 50
MAX_RESTART_ATTEMPTS: int = 5
INITIAL_RESTART_DELAY_MS: float = 500.0
MAX_RESTART_DELAY_MS: float = 5000.0
DEFAULT_LANGUAGE: str = "en-US"


class AlignmentState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    RESTARTING = "restarting"
    STOPPED = "stopped"  # gave up after repeated failures


@dataclass
class AlignmentSession:
    """Per-listening-cycle state. Discarded on stop."""
    last_matched_line: int = 0
    restart_attempts: int = 0
    is_listening: bool = False


@dataclass
class AlignmentMatch:
    """The winning candidate for one final transcript."""
    line_index: int
    score: int
    word: str  # normalized spoken word that produced the candidate
    distance: int = 0  # edit distance; 0 for an exact match


def _ignore(*_args: object) -> None:
    pass


@dataclass
class AlignmentCallbacks:
    """Notifications from the alignment engine to its owner."""
    on_scroll_to: Callable[[int], None] = _ignore
    on_recognized_text: Callable[[str], None] = _ignore
    on_confidence_change: Callable[[float], None] = _ignore
    on_error: Callable[[VoiceError], None] = _ignore
    on_status_change: Callable[[bool], None] = _ignore  # listening on/off
    on_level: Callable[[float], None] = _ignore


class AlignmentEngine:
    """
    Follows a speaker through the script.

    State machine: idle -> listening -> (restarting) -> listening | stopped.
    Session events are only honoured while listening and only from the
    session the engine currently owns; anything else is dropped.
    """

    scheduler: Scheduler
    callbacks: AlignmentCallbacks
    fuzzy: FuzzyMatcher
    search_window: int
    max_restart_attempts: int
    initial_restart_delay_ms: float
    max_restart_delay_ms: float
    language: str

    state: AlignmentState
    session: AlignmentSession | None

    _index: ScriptIndex | None
    _session_factory: SessionFactory | None
    _is_supported: Callable[[], bool]
    _recognition: RecognitionSession | None
    _generation: int
    _carried_line: int
    _reported_listening: bool

    def __init__(
        self,
        scheduler: Scheduler,
        session_factory: SessionFactory | None = None,
        callbacks: AlignmentCallbacks | None = None,
        is_supported: Callable[[], bool] | None = None,
        search_window: int = SEARCH_WINDOW_SIZE,
        max_restart_attempts: int = MAX_RESTART_ATTEMPTS,
        initial_restart_delay_ms: float = INITIAL_RESTART_DELAY_MS,
        max_restart_delay_ms: float = MAX_RESTART_DELAY_MS,
        fuzzy: FuzzyMatcher | None = None,
        language: str = DEFAULT_LANGUAGE
    ) -> None:
        self.scheduler = scheduler
        self.callbacks = callbacks or AlignmentCallbacks()
        self.fuzzy = fuzzy or FuzzyMatcher()
        self.search_window = max(0, search_window)
        self.max_restart_attempts = max(0, max_restart_attempts)
        self.initial_restart_delay_ms = initial_restart_delay_ms
        self.max_restart_delay_ms = max_restart_delay_ms
        self.language = language

        self._session_factory = session_factory
        if is_supported is None:
            self._is_supported = lambda: self._session_factory is not None
        else:
            self._is_supported = is_supported

        self.state = AlignmentState.IDLE
        self.session = None
        self._index = None
        self._recognition = None
        self._generation = 0
        self._carried_line = 0
        self._reported_listening = False
        self._restart_timer = TimerSlot(scheduler, "restart")

    # ---- script ---------------------------------------------------------

    @property
    def index(self) -> ScriptIndex | None:
        return self._index

    def set_index(self, index: ScriptIndex) -> None:
        """Use a prebuilt index (shared with the other playback modes)."""
        self._index = index

    def update_script(self, text: str, max_words_per_line: int = 0) -> ScriptIndex:
        """Rebuild the index from script text."""
        self._index = ScriptIndex.build(text, max_words_per_line)
        logger.debug("Indexed %d lines, %d distinct words",
                     self._index.line_count, self._index.vocabulary_size)
        return self._index

    def set_language(self, language: str) -> None:
        """Set the recognition locale; takes effect on the next session."""
        self.language = language

    # ---- anchor ---------------------------------------------------------

    @property
    def last_matched_line(self) -> int:
        if self.session is not None:
            return self.session.last_matched_line
        return self._carried_line

    @last_matched_line.setter
    def last_matched_line(self, line_index: int) -> None:
        self._carried_line = line_index
        if self.session is not None:
            self.session.last_matched_line = line_index

    def set_current_line(self, line_index: int) -> None:
        """Manually move the anchor (e.g. after the reader navigated)."""
        line_index = max(0, line_index)
        if self._index is not None and self._index.line_count:
            line_index = min(line_index, self._index.line_count - 1)
        self.last_matched_line = line_index

    def reset(self) -> None:
        """Move the anchor back to the first line."""
        self.last_matched_line = 0

    # ---- lifecycle ------------------------------------------------------

    def is_active(self) -> bool:
        return self.state in (AlignmentState.LISTENING, AlignmentState.RESTARTING)

    def start(self) -> bool:
        """
        Start listening.

        Returns:
            True if listening (or already listening), False if recognition
            is unavailable or the session could not be opened.
        """
        if self.is_active():
            return True

        if self._session_factory is None or not self._is_supported():
            self._report(UnsupportedError("Speech recognition is not supported"))
            return False

        debug_log.log_session_event("start", self.language)
        self.session = AlignmentSession(
            last_matched_line=self._carried_line,
            restart_attempts=0,
            is_listening=True,
        )
        self.state = AlignmentState.LISTENING
        self._open_session()
        return self.is_active()

    def stop(self) -> None:
        """Stop listening. Leaves no pending restart or open session."""
        self._restart_timer.cancel()
        if self.session is not None:
            self._carried_line = self.session.last_matched_line
            self.session.is_listening = False
            self.session = None
        self._close_recognition()
        if self.state != AlignmentState.IDLE:
            debug_log.log_session_event("stop")
        self.state = AlignmentState.IDLE
        self._set_listening(False)

    def restart_delay(self, attempts: int) -> float:
        """Backoff before restart number attempts + 1."""
        return min(self.initial_restart_delay_ms * (2 ** attempts),
                   self.max_restart_delay_ms)

    # ---- session plumbing -------------------------------------------------

    def _open_session(self) -> None:
        assert self._session_factory is not None
        self._generation += 1
        generation: int = self._generation
        callbacks = SessionCallbacks(
            on_start=lambda: self._handle_start(generation),
            on_result=lambda result: self._handle_result(generation, result),
            on_error=lambda code: self._handle_error(generation, code),
            on_end=lambda: self._handle_end(generation),
            on_level=lambda level: self._handle_level(generation, level),
        )
        try:
            self._recognition = self._session_factory(self.language, callbacks)
            self._recognition.start()
        except VoiceError as e:
            logger.warning("Recognition session failed to start: %s", e)
            if generation != self._generation:
                return
            self._recognition = None
            if e.retryable:
                self._handle_end(generation)
            else:
                self._fail(e)
        except Exception as e:
            # Unknown backend failures are retried like a dropped session
            logger.exception("Recognition session crashed on start")
            if generation != self._generation:
                return
            self._recognition = None
            self._report(TransientSessionError(f"Speech recognition failed: {e}", "session-crash"))
            self._handle_end(generation)

    def _close_recognition(self) -> None:
        recognition = self._recognition
        self._recognition = None
        # Invalidate callbacks from the session being closed
        self._generation += 1
        if recognition is not None:
            try:
                recognition.stop()
            except VoiceError as e:
                logger.warning("Error stopping recognition session: %s", e)

    def _is_current(self, generation: int) -> bool:
        return (generation == self._generation
                and self.session is not None
                and self.session.is_listening)

    def _handle_start(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        assert self.session is not None
        self.session.restart_attempts = 0
        self.state = AlignmentState.LISTENING
        debug_log.log_session_event("listening")
        self._set_listening(True)

    def _handle_level(self, generation: int, level: float) -> None:
        if self._is_current(generation):
            self.callbacks.on_level(level)

    def _handle_result(self, generation: int, result: TranscriptionResult) -> None:
        if not self._is_current(generation):
            return
        debug_log.log_transcript(result.text, result.is_partial)
        self.callbacks.on_recognized_text(result.text)
        if result.is_partial:
            return

        self.callbacks.on_confidence_change(result.confidence)
        self.align(result.text)

    def _handle_error(self, generation: int, code: str) -> None:
        if not self._is_current(generation):
            return
        error = error_from_code(code)
        if error is None:
            return
        debug_log.log_session_event("error", code)
        if error.retryable:
            # The session's end event drives the restart
            logger.warning("Recognition error: %s", code)
            self._report(error)
        else:
            self._fail(error)

    def _handle_end(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        assert self.session is not None
        self._recognition = None

        attempts: int = self.session.restart_attempts
        if attempts >= self.max_restart_attempts:
            logger.error("Giving up on speech recognition after %d restarts", attempts)
            self._fail(RecoveryExhaustedError(
                f"Speech recognition stopped after {attempts} failed restarts"),
                final_state=AlignmentState.STOPPED)
            return

        delay: float = self.restart_delay(attempts)
        self.session.restart_attempts = attempts + 1
        self.state = AlignmentState.RESTARTING
        debug_log.log_session_event(
            "restart", f"attempt {attempts + 1} in {delay:.0f}ms")
        logger.info("Recognition ended, restarting in %.0fms (attempt %d)",
                    delay, attempts + 1)
        self._restart_timer.schedule(delay, self._restart)

    def _restart(self) -> None:
        if self.state != AlignmentState.RESTARTING or self.session is None:
            return
        self.state = AlignmentState.LISTENING
        self._open_session()

    def _fail(self, error: VoiceError,
              final_state: AlignmentState = AlignmentState.IDLE) -> None:
        """Report a non-retryable error and stop listening."""
        self.stop()
        self.state = final_state
        self._report(error)

    def _report(self, error: VoiceError) -> None:
        self.callbacks.on_error(error)

    def _set_listening(self, listening: bool) -> None:
        if listening != self._reported_listening:
            self._reported_listening = listening
            self.callbacks.on_status_change(listening)

    # ---- matching ---------------------------------------------------------

    def align(self, transcript: str) -> int | None:
        """
        Align one final transcript, moving the anchor if a better line wins.

        Returns:
            The new anchor line if it moved, else None.
        """
        anchor: int = self.last_matched_line
        match = self.find_best_match(transcript, anchor)
        moved: bool = match is not None and match.line_index != anchor
        if match is None:
            debug_log.log_match(anchor, None, "", 0, False)
        else:
            debug_log.log_match(anchor, match.line_index, match.word, match.score, moved)
        if not moved:
            return None

        assert match is not None
        self.last_matched_line = match.line_index
        self.callbacks.on_scroll_to(match.line_index)
        return match.line_index

    def find_best_match(self, transcript: str,
                        anchor: int | None = None) -> AlignmentMatch | None:
        """
        Find the line that best explains the transcript.

        Candidates come from exact index lookups, or from fuzzy matches for
        words with no exact entry. Only lines in [anchor, anchor + window]
        count. Lower score wins; the first candidate seen wins ties.
        """
        if self._index is None:
            return None
        if anchor is None:
            anchor = self.last_matched_line

        words: list[str] = [w for w in (normalize_word(t) for t in transcript.split()) if w]
        if not words:
            return None

        first_line: int = max(0, anchor)
        last_line: int = first_line + self.search_window
        best: AlignmentMatch | None = None
        window_vocabulary: list[str] | None = None

        for word in words:
            if word in self._index:
                for pos in self._index.positions_between(word, first_line, last_line):
                    score: int = abs(pos.line_index - anchor)
                    if best is None or score < best.score:
                        best = AlignmentMatch(pos.line_index, score, word)
                continue

            if window_vocabulary is None:
                window_vocabulary = self._index.vocabulary_between(first_line, last_line)
            for candidate in self.fuzzy.candidates(word, window_vocabulary):
                for pos in self._index.positions_between(candidate.word, first_line, last_line):
                    score = abs(pos.line_index - anchor) + candidate.distance
                    if best is None or score < best.score:
                        best = AlignmentMatch(pos.line_index, score, word, candidate.distance)

        return best

