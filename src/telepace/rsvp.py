"""
Rapid Serial Visual Presentation.

Shows one word at a time at a fixed words-per-minute pace, lingering on
words that end a sentence or clause. Each word has an Optimal Recognition
Point (ORP), the grapheme the reader's eye should fixate on.
"""

import logging
from collections.abc import Callable

import regex

from .config import RSVP_SPEED_RANGE
from .scheduler import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

# Latin, CJK and typographic punctuation stripped before locating the ORP
PUNCTUATION: regex.Pattern = regex.compile(
    r'[.,!?;:\'"()\-\u2014\u2013\u00AB\u00BB\u201C\u201D\u2018\u2019'
    r'\u3001\u3002\u300C\u300D\u300E\u300F\u3010\u3011'
    r'\uFF01\uFF0C\uFF1A\uFF1B\uFF1F\u2026\u2025]')
# Sentence-ending punctuation at the end of a word
MAJOR_PUNCTUATION: regex.Pattern = regex.compile(r'[.!?\u3002\uFF01\uFF1F]$')
# Clause-level punctuation at the end of a word
MINOR_PUNCTUATION: regex.Pattern = regex.compile(r'[,;:\u3001\uFF0C\uFF1A\uFF1B]$')

# Extended grapheme clusters
GRAPHEME: regex.Pattern = regex.compile(r"\X")

MAJOR_MULTIPLIER: float = 2.0
MINOR_MULTIPLIER: float = 1.5
DEFAULT_WPM: int = 300


def graphemes(word: str) -> list[str]:
    """
    Split a word into user-perceived characters.

    Combining marks, emoji sequences, flags and keycaps each count as one.
    """
    return GRAPHEME.findall(word)


def _is_punctuation(grapheme: str) -> bool:
    return PUNCTUATION.match(grapheme) is not None


def calculate_orp(word: str) -> int:
    """
    Grapheme index of the Optimal Recognition Point within word.

    Leading and trailing punctuation is ignored when measuring the letter
    run; the returned index still counts any leading punctuation.
    """
    chars: list[str] = graphemes(word)
    if not chars:
        return 0

    start: int = 0
    while start < len(chars) and _is_punctuation(chars[start]):
        start += 1
    end: int = len(chars)
    while end > start and _is_punctuation(chars[end - 1]):
        end -= 1

    length: int = end - start
    if length <= 0:
        return 0
    if length <= 3:
        return start
    return start + length // 3


def split_for_display(word: str) -> tuple[str, str, str]:
    """Split word into (before, orp, after) around the ORP grapheme."""
    chars: list[str] = graphemes(word)
    if not chars:
        return "", "", ""
    orp: int = calculate_orp(word)
    return ''.join(chars[:orp]), chars[orp], ''.join(chars[orp + 1:])


def calculate_delay(word: str, wpm: float,
                    major_multiplier: float = MAJOR_MULTIPLIER,
                    minor_multiplier: float = MINOR_MULTIPLIER) -> float:
    """Milliseconds to show word for at wpm words per minute."""
    base: float = 60_000 / clamp_wpm(wpm)
    if MAJOR_PUNCTUATION.search(word):
        return base * max(1.0, major_multiplier)
    if MINOR_PUNCTUATION.search(word):
        return base * max(1.0, minor_multiplier)
    return base


def clamp_wpm(wpm: float) -> int:
    low, high = RSVP_SPEED_RANGE
    return int(max(low, min(high, round(wpm))))


def _ignore(*_args: object) -> None:
    pass


class RSVPScheduler:
    """
    Sequential word timer.

    Shows word i, waits its delay, moves to i + 1. The last word is held
    for its own delay before on_complete fires.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        wpm: float = DEFAULT_WPM,
        on_word: Callable[[int, str], None] = _ignore,
        on_complete: Callable[[], None] = _ignore,
        major_multiplier: float = MAJOR_MULTIPLIER,
        minor_multiplier: float = MINOR_MULTIPLIER
    ) -> None:
        self.scheduler = scheduler
        self.wpm: int = clamp_wpm(wpm)
        self.on_word = on_word
        self.on_complete = on_complete
        self.major_multiplier = major_multiplier
        self.minor_multiplier = minor_multiplier

        self.words: list[str] = []
        self.current_index: int = 0
        self.is_playing: bool = False
        self.completed: bool = False
        self._timer = TimerSlot(scheduler, "rsvp-advance")

    @property
    def current_word(self) -> str:
        if 0 <= self.current_index < len(self.words):
            return self.words[self.current_index]
        return ""

    @property
    def total_words(self) -> int:
        return len(self.words)

    @property
    def progress(self) -> float:
        """Percentage of words shown so far, counting the current one."""
        if not self.words:
            return 0.0
        return (self.current_index + 1) / len(self.words) * 100

    def set_words(self, text: str) -> None:
        """Load new text; playback continues from the start if it was running."""
        was_playing: bool = self.is_playing
        self.pause()
        self.words = text.split()
        self.current_index = 0
        self.completed = False
        self._show()
        if was_playing and self.words:
            self.start()

    def delay_for(self, word: str) -> float:
        return calculate_delay(word, self.wpm, self.major_multiplier, self.minor_multiplier)

    def start(self) -> bool:
        if self.is_playing or not self.words:
            return False
        if self.completed or self.current_index >= len(self.words):
            self.current_index = 0
            self.completed = False
        self.is_playing = True
        self._show()
        self._schedule_next()
        return True

    def _schedule_next(self) -> None:
        if not self.is_playing:
            return
        self._timer.schedule(self.delay_for(self.current_word), self._advance)

    def _advance(self) -> None:
        if not self.is_playing:
            return
        if self.current_index >= len(self.words) - 1:
            self.is_playing = False
            self.completed = True
            logger.debug("RSVP finished after %d words", len(self.words))
            self.on_complete()
            return
        self.current_index += 1
        self._show()
        self._schedule_next()

    def _show(self) -> None:
        if self.words:
            self.on_word(self.current_index, self.current_word)

    def pause(self) -> None:
        self.is_playing = False
        self._timer.cancel()

    def toggle(self) -> None:
        if self.is_playing:
            self.pause()
        else:
            self.start()

    def reset(self) -> None:
        self.pause()
        self.current_index = 0
        self.completed = False
        self._show()

    def go_to_word(self, index: int) -> bool:
        """Jump to a word; ignored while playing."""
        if self.is_playing or not self.words:
            return False
        self.current_index = max(0, min(len(self.words) - 1, index))
        self.completed = False
        self._show()
        return True

    def set_speed(self, wpm: float) -> int:
        """Takes effect from the next scheduled word."""
        self.wpm = clamp_wpm(wpm)
        return self.wpm

    def adjust_speed(self, delta: float) -> int:
        return self.set_speed(self.wpm + delta)
