"""
SubRip (.srt) export of a script timed at a constant scroll speed.
"""

import math
from pathlib import Path

from .script_index import MIN_SCROLL_SPEED, split_text_into_lines

LINES_PER_SUBTITLE: int = 2


def format_srt_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm."""
    total_ms: int = math.floor(max(0.0, seconds) * 1000 + 0.5)
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, ms = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def generate_srt(
    text: str,
    lines_per_second: float,
    max_words_per_line: int = 0,
    lines_per_subtitle: int = LINES_PER_SUBTITLE
) -> str:
    """
    Build SRT subtitles that follow the script at lines_per_second.

    Lines are grouped lines_per_subtitle at a time. A group made only of
    blank lines produces no subtitle but still takes one line's worth of time.
    """
    lines: list[str] = split_text_into_lines(text, max_words_per_line)
    seconds_per_line: float = 1 / max(lines_per_second, MIN_SCROLL_SPEED)
    group_size: int = max(1, lines_per_subtitle)

    entries: list[str] = []
    current: float = 0.0
    for start in range(0, len(lines), group_size):
        group = [line for line in lines[start:start + group_size] if line.strip()]
        if not group:
            current += seconds_per_line
            continue

        end: float = current + len(group) * seconds_per_line
        entries.append(
            f"{len(entries) + 1}\n"
            f"{format_srt_time(current)} --> {format_srt_time(end)}\n"
            + "\n".join(group) + "\n")
        current = end

    return "\n".join(entries)


def write_srt(path: Path, text: str, lines_per_second: float,
              max_words_per_line: int = 0) -> Path:
    path.write_text(generate_srt(text, lines_per_second, max_words_per_line),
                    encoding="utf-8")
    return path
