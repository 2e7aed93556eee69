"""
Script line derivation and word indexing.

The line list produced here is the single definition of "a line" for every
playback mode: continuous scrolling, paging and voice alignment all agree on
it, so a line index means the same thing everywhere.
"""

import math
import re
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field

# Characters kept when normalizing a word for matching
_NON_ALNUM: re.Pattern[str] = re.compile(r'[^a-z0-9]')

# Hebrew, Arabic, Persian, Urdu and presentation forms
_RTL_CHARS: re.Pattern[str] = re.compile(r'[\u0591-\u07FF\uFB1D-\uFDFD\uFE70-\uFEFC]')
RTL_SAMPLE_SIZE: int = 200
RTL_DETECTION_THRESHOLD: float = 0.3

# Slowest scroll speed accepted when estimating durations (lines per second)
MIN_SCROLL_SPEED: float = 0.1


def normalize_word(word: str) -> str:
    """Normalize a word for matching (lowercase, keep only a-z and 0-9).

    Idempotent: normalizing an already-normalized word returns it unchanged.
    """
    return _NON_ALNUM.sub('', word.lower())


def split_text_into_lines(text: str, max_words_per_line: int = 0) -> list[str]:
    """
    Split script text into display lines.

    Args:
        text: Raw script text
        max_words_per_line: Wrap limit; 0 (or less) keeps source lines as-is

    Returns:
        Ordered list of line strings. Blank source lines are preserved.
    """
    lines: list[str] = []
    for line in text.split('\n'):
        if max_words_per_line > 0 and line.strip():
            words: list[str] = line.split()
            if len(words) > max_words_per_line:
                for i in range(0, len(words), max_words_per_line):
                    lines.append(' '.join(words[i:i + max_words_per_line]))
            else:
                lines.append(' '.join(words))
        else:
            lines.append(line)
    return lines


@dataclass(frozen=True)
class WordPosition:
    """Where one normalized word occurs in the script."""
    normalized_word: str
    line_index: int
    word_index_in_line: int


@dataclass(frozen=True)
class ScriptLine:
    """A derived display line."""
    text: str  # Line text as displayed
    words: tuple[str, ...]  # Raw words, including ones that normalize to ""
    normalized: tuple[str, ...]  # Same length as words; "" for unindexable words


@dataclass(frozen=True)
class ScriptIndex:
    """
    Immutable index from normalized words to their positions in the script.

    Always rebuilt wholesale with build(); never patched in place.
    """
    text: str
    max_words_per_line: int
    lines: tuple[ScriptLine, ...]
    _positions: dict[str, tuple[WordPosition, ...]] = field(repr=False)
    # Parallel to _positions; line numbers for bisecting
    _position_lines: dict[str, tuple[int, ...]] = field(repr=False)

    @classmethod
    def build(cls, text: str, max_words_per_line: int = 0) -> 'ScriptIndex':
        """Derive lines from text and index every non-empty normalized word."""
        max_words_per_line = max(0, int(max_words_per_line))
        script_lines: list[ScriptLine] = []
        positions: dict[str, list[WordPosition]] = {}

        for line_index, line_text in enumerate(
                split_text_into_lines(text, max_words_per_line)):
            words: list[str] = line_text.split()
            normalized: list[str] = [normalize_word(w) for w in words]
            for word_index, norm in enumerate(normalized):
                if norm:
                    positions.setdefault(norm, []).append(
                        WordPosition(norm, line_index, word_index))
            script_lines.append(ScriptLine(
                text=line_text,
                words=tuple(words),
                normalized=tuple(normalized),
            ))

        frozen: dict[str, tuple[WordPosition, ...]] = {
            word: tuple(found) for word, found in positions.items()
        }
        return cls(
            text=text,
            max_words_per_line=max_words_per_line,
            lines=tuple(script_lines),
            _positions=frozen,
            _position_lines={
                word: tuple(p.line_index for p in found)
                for word, found in frozen.items()
            },
        )

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def line_texts(self) -> list[str]:
        return [line.text for line in self.lines]

    @property
    def total_words(self) -> int:
        """Number of raw (whitespace-separated) words across all lines."""
        return sum(len(line.words) for line in self.lines)

    def __contains__(self, normalized_word: object) -> bool:
        return normalized_word in self._positions

    @property
    def vocabulary_size(self) -> int:
        """Number of distinct indexed words."""
        return len(self._positions)

    def lookup(self, normalized_word: str) -> list[WordPosition]:
        """Exact lookup; returns positions in script order (may be empty)."""
        return list(self._positions.get(normalized_word, ()))

    def positions_between(self, normalized_word: str, first_line: int,
                          last_line: int) -> list[WordPosition]:
        """Positions of a word whose line lies in [first_line, last_line]."""
        found = self._positions.get(normalized_word)
        if not found:
            return []
        line_numbers = self._position_lines[normalized_word]
        lo: int = bisect_left(line_numbers, first_line)
        hi: int = bisect_right(line_numbers, last_line)
        return list(found[lo:hi])

    def vocabulary_between(self, first_line: int, last_line: int) -> list[str]:
        """Distinct indexed words appearing in lines [first_line, last_line], in order."""
        seen: dict[str, None] = {}
        for line in self.lines[max(0, first_line):max(0, last_line + 1)]:
            for norm in line.normalized:
                if norm:
                    seen.setdefault(norm, None)
        return list(seen)


def calculate_duration(text: str, lines_per_second: float,
                       max_words_per_line: int = 0) -> tuple[int, int]:
    """Estimate reading time as (minutes, seconds) at a given scroll speed."""
    total_lines: int = len(split_text_into_lines(text, max_words_per_line))
    safe_speed: float = max(lines_per_second, MIN_SCROLL_SPEED)
    total_seconds: float = total_lines / safe_speed
    return math.floor(total_seconds / 60), math.floor(total_seconds % 60 + 0.5)


def calculate_wpm(text: str, lines_per_second: float, max_words_per_line: int = 0) -> int:
    """Words per minute implied by a lines-per-second scroll speed."""
    lines: list[str] = split_text_into_lines(text, max_words_per_line)
    total_words: int = len(text.split())
    total_lines: int = len(lines) or 1
    return round(total_words / total_lines * lines_per_second * 60)


def is_rtl(text: str) -> bool:
    """Check whether text is mostly written in a right-to-left script."""
    sample: str = text[:RTL_SAMPLE_SIZE]
    matches: int = len(_RTL_CHARS.findall(sample))
    return matches > len(sample) * RTL_DETECTION_THRESHOLD
