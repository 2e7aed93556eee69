# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through the alignment engine.

Takes a transcript file (one recognized utterance per line) and a script
file, feeds each utterance to an AlignmentEngine as a final recognition
result on a manual clock, and writes a log of where the anchor went.
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, TextIO

from .alignment import SEARCH_WINDOW_SIZE, AlignmentCallbacks, AlignmentEngine
from .recognition import RecognitionSession, SessionCallbacks, TranscriptionResult
from .scheduler import ManualScheduler

EventType = Literal["FORWARD_JUMP", "advance", "no_change", "no_match"]

# An anchor move larger than this many lines is flagged in the log
JUMP_THRESHOLD: int = 5
# Simulated time between utterances
UTTERANCE_INTERVAL_MS: float = 1500.0


@dataclass
class ReplayEvent:
    """Outcome of aligning one transcript line."""
    transcript_line: int
    transcript: str
    anchor_before: int
    anchor_after: int
    event_type: EventType
    matched_word: str = ""
    score: int = 0


class ReplaySession(RecognitionSession):
    """A recognition session whose results are pushed in by the replayer."""

    def __init__(self, language: str, callbacks: SessionCallbacks) -> None:
        super().__init__(language, callbacks)
        self.running: bool = False

    def start(self) -> None:
        self.running = True
        self.callbacks.on_start()

    def stop(self) -> None:
        if self.running:
            self.running = False
            self.callbacks.on_end()

    def feed(self, text: str, is_partial: bool = False) -> None:
        if self.running:
            self.callbacks.on_result(TranscriptionResult(text, is_partial))


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===') and empty lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_script(path: Path) -> str:
    """Load script file content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def classify(before: int, after: int, matched: bool) -> EventType:
    if not matched:
        return "no_match"
    if after > before + JUMP_THRESHOLD:
        return "FORWARD_JUMP"
    if after > before:
        return "advance"
    return "no_change"


def _line_text(lines: list[str], index: int) -> str:
    return lines[index] if 0 <= index < len(lines) else "<END>"


def replay_transcript(
    transcript_lines: list[str],
    script_text: str,
    output: TextIO,
    verbose: bool = False,
    max_words_per_line: int = 0,
    search_window: int = SEARCH_WINDOW_SIZE,
    partials: bool = False
) -> list[ReplayEvent]:
    """Replay transcript lines through an alignment engine and log events.

    Args:
        transcript_lines: Recognized utterances, in order
        script_text: The script content
        output: File handle to write log output
        verbose: If True, log every line. If False, only log forward jumps
            and lines that matched nothing.
        max_words_per_line: Wrap limit used to derive script lines
        search_window: Lines searched forward from the anchor
        partials: Also feed each utterance word by word as partial results
            before the final one

    Returns:
        List of all replay events
    """
    scheduler = ManualScheduler()
    sessions: list[ReplaySession] = []

    def factory(language: str, callbacks: SessionCallbacks) -> ReplaySession:
        session = ReplaySession(language, callbacks)
        sessions.append(session)
        return session

    recognized: list[str] = []
    engine = AlignmentEngine(
        scheduler,
        session_factory=factory,
        callbacks=AlignmentCallbacks(on_recognized_text=recognized.append),
        search_window=search_window,
    )
    index = engine.update_script(script_text, max_words_per_line)
    script_lines: list[str] = index.line_texts
    engine.start()
    events: list[ReplayEvent] = []

    output.write("=" * 80 + "\n")
    output.write("ALIGNMENT REPLAY LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Script lines: {index.line_count}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write(f"Search window: {engine.search_window}\n")
    output.write("=" * 80 + "\n\n")

    output.write("SCRIPT LINES:\n")
    output.write("-" * 40 + "\n")
    for i, text in enumerate(script_lines):
        output.write(f"  [{i:4d}] {text}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("ALIGNMENT LOG:\n")
    output.write("-" * 40 + "\n")

    for line_num, line in enumerate(transcript_lines, start=1):
        session = sessions[-1]
        before: int = engine.last_matched_line
        match = engine.find_best_match(line, before)

        if partials:
            words: list[str] = line.split()
            for count in range(1, len(words)):
                session.feed(" ".join(words[:count]), is_partial=True)
        session.feed(line)
        scheduler.advance(UTTERANCE_INTERVAL_MS)

        after: int = engine.last_matched_line
        event_type: EventType = classify(before, after, match is not None)
        event = ReplayEvent(
            transcript_line=line_num,
            transcript=line,
            anchor_before=before,
            anchor_after=after,
            event_type=event_type,
            matched_word=match.word if match else "",
            score=match.score if match else 0,
        )
        events.append(event)

        if event_type == "FORWARD_JUMP":
            output.write(f"\n--- Line {line_num}: \"{line[:60]}\" ---\n")
            output.write("  *** FORWARD JUMP DETECTED ***\n")
            output.write(f"      Anchor: {before} -> {after} (word \"{event.matched_word}\")\n")
            output.write(f"      Script line: \"{_line_text(script_lines, after)}\"\n")
        elif event_type == "no_match":
            output.write(f"\n--- Line {line_num}: \"{line[:60]}\" ---\n")
            output.write(f"  no match within lines {before}..{before + engine.search_window}\n")
        elif verbose:
            output.write(f"\n--- Line {line_num}: \"{line[:60]}\" ---\n")
            output.write(
                f"  [{after:4d}] \"{_line_text(script_lines, after)}\" "
                f"({event_type}, word \"{event.matched_word}\", score {event.score})\n")

    engine.stop()

    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")

    forward_jumps: list[ReplayEvent] = [e for e in events if e.event_type == "FORWARD_JUMP"]
    output.write(f"Total lines processed: {len(transcript_lines)}\n")
    output.write(f"Recognized text updates: {len(recognized)}\n")
    output.write(f"Final line: {engine.last_matched_line} / {index.line_count}\n")
    output.write(f"Advances: {sum(1 for e in events if e.event_type == 'advance')}\n")
    output.write(f"No change: {sum(1 for e in events if e.event_type == 'no_change')}\n")
    output.write(f"No match: {sum(1 for e in events if e.event_type == 'no_match')}\n")
    output.write(f"Forward jumps: {len(forward_jumps)}\n")

    if forward_jumps:
        output.write("\nForward jump events:\n")
        for e in forward_jumps:
            output.write(
                f"  Line {e.transcript_line}: {e.anchor_before} -> {e.anchor_after} "
                f"\"{_line_text(script_lines, e.anchor_after)}\"\n")

    return events


def main() -> None:
    """CLI entry point for the replay tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Debug speech alignment by replaying a transcript through the engine"
    )
    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file"
    )
    parser.add_argument(
        "script",
        type=Path,
        help="Path to script file"
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every line, not just jumps and misses"
    )
    parser.add_argument(
        "-p", "--partials",
        action="store_true",
        help="Also feed each line word by word as partial results"
    )
    parser.add_argument(
        "--max-words",
        type=int,
        default=0,
        help="Wrap script lines longer than this many words"
    )
    parser.add_argument(
        "--window",
        type=int,
        default=SEARCH_WINDOW_SIZE,
        help=f"Search window in lines (default: {SEARCH_WINDOW_SIZE})"
    )

    args: argparse.Namespace = parser.parse_args()

    if not args.transcript.exists():
        print(f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.script.exists():
        print(f"Error: Script file not found: {args.script}", file=sys.stderr)
        sys.exit(1)

    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        script_text: str = load_script(args.script)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay_transcript(transcript_lines, script_text, f, args.verbose,
                              args.max_words, args.window, args.partials)
        print(f"Replay log written to: {args.output}")
    else:
        replay_transcript(transcript_lines, script_text, sys.stdout, args.verbose,
                          args.max_words, args.window, args.partials)


if __name__ == "__main__":
    main()
