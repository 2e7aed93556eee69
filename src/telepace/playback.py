"""
Top-level playback controller.

Owns one engine per playback mode and decides which one is authoritative.
Every position change, status change and notification leaves through a
single PlaybackEvent stream that presentation code (the WebSocket server,
tests, the replay tool) subscribes to.
"""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union

from .alignment import AlignmentCallbacks, AlignmentEngine
from .config import DEFAULT_CONFIG, Config, clamp_max_words_per_line
from .errors import CapabilityError, MicrophonePermissionError, VoiceError
from .fuzzy import FuzzyMatcher
from .kinematics import ContentMetrics, KinematicScroller, ScrollerCallbacks, ScrollerState
from .paginator import PageIndicator, Paginator, lines_per_page
from .recognition import SessionFactory
from .rsvp import RSVPScheduler
from .scheduler import Scheduler, TimerSlot
from .script_index import ScriptIndex

logger = logging.getLogger(__name__)

# Recognized text shown to the reader
CAPTION_MAX_WORDS: int = 6
CAPTION_HIDE_MS: float = 2000.0


class PlaybackMode(Enum):
    CONTINUOUS = "continuous"
    PAGING = "paging"
    VOICE = "voice"
    RSVP = "rsvp"


MODE_CYCLE: tuple[PlaybackMode, ...] = (
    PlaybackMode.CONTINUOUS,
    PlaybackMode.PAGING,
    PlaybackMode.VOICE,
    PlaybackMode.RSVP,
)


def next_mode(mode: PlaybackMode) -> PlaybackMode:
    return MODE_CYCLE[(MODE_CYCLE.index(mode) + 1) % len(MODE_CYCLE)]


@dataclass(frozen=True)
class ContinuousPosition:
    translate_y: float
    mode: PlaybackMode = field(default=PlaybackMode.CONTINUOUS, init=False)


@dataclass(frozen=True)
class PagingPosition:
    page_index: int
    mode: PlaybackMode = field(default=PlaybackMode.PAGING, init=False)


@dataclass(frozen=True)
class VoicePosition:
    line_index: int
    mode: PlaybackMode = field(default=PlaybackMode.VOICE, init=False)


@dataclass(frozen=True)
class RSVPPosition:
    word_index: int
    mode: PlaybackMode = field(default=PlaybackMode.RSVP, init=False)


PlaybackPosition = Union[ContinuousPosition, PagingPosition, VoicePosition, RSVPPosition]


def position_to_dict(position: PlaybackPosition) -> dict[str, Any]:
    data: dict[str, Any] = asdict(position)
    data["mode"] = position.mode.value
    return data


@dataclass
class PlaybackEvent:
    """One notification for subscribers, e.g. {"type": "page_changed", ...}."""
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.data}


Listener = Callable[[PlaybackEvent], None]


def caption_text(text: str, max_words: int = CAPTION_MAX_WORDS) -> str:
    """Last few recognized words, with "..." when some were dropped."""
    words: list[str] = text.split()
    if len(words) > max_words:
        return "..." + " ".join(words[-max_words:])
    return text


class PlaybackStateMachine:
    """
    Coordinates continuous, paging, voice and RSVP playback.

    Switching modes stops the outgoing engine completely (timers, frames
    and recognition sessions) before the incoming mode's position is reset.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: Config | None = None,
        session_factory: SessionFactory | None = None,
        is_voice_supported: Callable[[], bool] | None = None
    ) -> None:
        self.scheduler = scheduler
        self.config: Config = config or DEFAULT_CONFIG
        timing = self.config["timing"]
        voice = self.config["voice"]
        playback = self.config["playback"]

        self._listeners: list[Listener] = []
        self.index: ScriptIndex = ScriptIndex.build("")
        self.mode: PlaybackMode = PlaybackMode(playback["mode"])
        self.cue_points: set[int] = set(playback.get("cue_points", []))
        self.caption: str = ""
        self.caption_visible: bool = False
        self.current_page: int = 0
        self.total_pages: int = 1
        self.is_listening: bool = False
        self._line_height: float = 0.0
        self._viewport_height: float = 0.0
        self._top_padding: float = 0.0
        self._caption_timer = TimerSlot(scheduler, "caption")

        self.scroller = KinematicScroller(
            scheduler,
            speed=playback["scroll_speed"],
            callbacks=ScrollerCallbacks(
                on_offset_change=self._on_offset_change,
                on_state_change=self._on_scroller_state,
                on_countdown_tick=self._on_countdown_tick,
                on_active_line_change=self._on_active_line_change,
                on_ended=self._on_ended,
            ),
            countdown_seconds=timing["countdown_seconds"],
            ramp_duration_ms=timing["ramp_duration_ms"],
            end_threshold_px=timing["end_threshold_px"],
            smooth_scroll_easing=timing["smooth_scroll_easing"],
            smooth_scroll_snap_px=timing["smooth_scroll_snap_px"],
            active_line_update_ms=timing["active_line_update_ms"],
        )
        self.paginator = Paginator(
            scheduler,
            overlap=timing["paging_overlap"],
            transition_ms=timing["paging_transition_ms"],
            on_page_changed=self._on_page_turned,
            on_transition_complete=self._on_page_settled,
            on_offset_change=self._on_page_offset,
        )
        self.rsvp = RSVPScheduler(
            scheduler,
            wpm=playback["rsvp_speed"],
            on_word=self._on_rsvp_word,
            on_complete=self._on_rsvp_complete,
            major_multiplier=self.config["rsvp"]["major_multiplier"],
            minor_multiplier=self.config["rsvp"]["minor_multiplier"],
        )
        self.alignment = AlignmentEngine(
            scheduler,
            session_factory=session_factory,
            callbacks=AlignmentCallbacks(
                on_scroll_to=self._on_voice_match,
                on_recognized_text=self._on_recognized_text,
                on_confidence_change=self._on_confidence,
                on_error=self._on_voice_error,
                on_status_change=self._on_listening_change,
                on_level=self._on_level,
            ),
            is_supported=is_voice_supported,
            search_window=voice["search_window"],
            max_restart_attempts=voice["max_restart_attempts"],
            initial_restart_delay_ms=voice["initial_restart_delay_ms"],
            max_restart_delay_ms=voice["max_restart_delay_ms"],
            fuzzy=FuzzyMatcher(voice["max_fuzzy_distance"]),
            language=voice["language"],
        )
        self.alignment.set_index(self.index)
        self.position: PlaybackPosition = self._initial_position(self.mode)

    # ---- subscribers --------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for events. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: str, **data: Any) -> None:
        event = PlaybackEvent(event_type, data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error("Playback listener failed on %s: %s", event_type, e,
                             exc_info=True)

    def _set_position(self, position: PlaybackPosition) -> None:
        # Only the engine for the current mode may move the position
        if position.mode != self.mode or position == self.position:
            return
        self.position = position
        self._emit("position", **position_to_dict(position))

    def _initial_position(self, mode: PlaybackMode) -> PlaybackPosition:
        if mode == PlaybackMode.CONTINUOUS:
            return ContinuousPosition(self.scroller.offset)
        if mode == PlaybackMode.PAGING:
            return PagingPosition(self.paginator.current_page)
        if mode == PlaybackMode.VOICE:
            return VoicePosition(self.alignment.last_matched_line)
        return RSVPPosition(self.rsvp.current_index)

    # ---- script and layout --------------------------------------------------

    @property
    def text(self) -> str:
        return self.index.text

    @property
    def max_words_per_line(self) -> int:
        return self.index.max_words_per_line

    def set_script(self, text: str, max_words_per_line: int | None = None) -> ScriptIndex:
        """Replace the script; every mode switches to the new line list."""
        if max_words_per_line is None:
            max_words_per_line = self.index.max_words_per_line
        previous_text: str = self.index.text
        self.index = ScriptIndex.build(text, clamp_max_words_per_line(max_words_per_line))
        self.alignment.set_index(self.index)
        if text != previous_text:
            # Voice following starts over on a new script
            self.alignment.reset()
        else:
            self.alignment.set_current_line(self.alignment.last_matched_line)
        if self.mode == PlaybackMode.VOICE:
            self._set_position(VoicePosition(self.alignment.last_matched_line))
        self.rsvp.set_words(text)
        self.cue_points = {c for c in self.cue_points if c < self.index.line_count}
        self._apply_layout()
        logger.info("Loaded script: %d lines, %d words",
                    self.index.line_count, self.index.total_words)
        self._emit("script", lines=self.index.line_texts,
                   max_words_per_line=self.index.max_words_per_line)
        return self.index

    def set_max_words_per_line(self, limit: int) -> ScriptIndex:
        return self.set_script(self.text, limit)

    def set_layout(self, line_height: float, viewport_height: float,
                   top_padding: float = 0.0) -> None:
        """Pixel geometry from the presentation layer."""
        self._line_height = max(0.0, line_height)
        self._viewport_height = max(0.0, viewport_height)
        self._top_padding = max(0.0, top_padding)
        self._apply_layout()

    def _apply_layout(self) -> None:
        metrics = ContentMetrics.for_lines(
            self.index.line_count, self._line_height, self._viewport_height,
            self._top_padding)
        self.scroller.set_metrics(metrics)
        self.paginator.set_metrics(metrics.content_height, metrics.viewport_height)
        if self.mode == PlaybackMode.PAGING:
            self._publish_page(self.paginator.current_page, self.paginator.total_pages)
        else:
            self._update_page_indicator()

    # ---- modes --------------------------------------------------------------

    def set_mode(self, mode: PlaybackMode | str) -> bool:
        """Switch modes. Returns False if mode was already selected."""
        mode = PlaybackMode(mode)
        if mode == self.mode:
            return False

        previous: PlaybackMode = self.mode
        self.stop()
        self.mode = mode
        self.position = self._initial_position(mode)

        if mode == PlaybackMode.PAGING:
            self.paginator.reset()
            self.paginator.scroll_to_page(0)
            self._publish_page(0, self.paginator.total_pages)
        elif mode == PlaybackMode.RSVP:
            self.rsvp.reset()

        logger.info("Playback mode %s -> %s", previous.value, mode.value)
        self._emit("mode_changed", mode=mode.value, previous=previous.value)
        self._emit("position", **position_to_dict(self.position))
        return True

    def cycle_mode(self) -> PlaybackMode:
        self.set_mode(next_mode(self.mode))
        return self.mode

    @property
    def is_playing(self) -> bool:
        if self.mode == PlaybackMode.CONTINUOUS:
            return self.scroller.is_scrolling
        if self.mode == PlaybackMode.VOICE:
            return self.alignment.is_active()
        if self.mode == PlaybackMode.RSVP:
            return self.rsvp.is_playing
        return False

    @property
    def is_counting_down(self) -> bool:
        return self.scroller.is_counting_down

    def toggle(self) -> None:
        """Play/pause for the current mode (next page in paging mode)."""
        if self.mode == PlaybackMode.CONTINUOUS:
            self.scroller.toggle()
        elif self.mode == PlaybackMode.PAGING:
            self.advance_page(1)
        elif self.mode == PlaybackMode.VOICE:
            if self.alignment.is_active():
                self.alignment.stop()
            else:
                self.alignment.start()
            self._emit_status()
        else:
            self.rsvp.toggle()
            self._emit_status()

    def stop(self) -> None:
        """Stop every engine and cancel all timers, frames and sessions."""
        self.scroller.stop()
        self.paginator.cancel()
        self.rsvp.pause()
        self.alignment.stop()
        self._caption_timer.cancel()
        self.caption_visible = False

    def shutdown(self) -> None:
        self.stop()
        self._listeners.clear()

    def has_pending_work(self) -> bool:
        return (self.scroller.has_pending_work or self.paginator.is_transitioning
                or self.rsvp.is_playing or self.alignment.is_active()
                or self._caption_timer.active)

    # ---- navigation ---------------------------------------------------------

    def back_to_top(self) -> None:
        """Stop scrolling and return every mode's position to the start."""
        self.scroller.back_to_top()
        self.paginator.reset()
        self.alignment.reset()
        self.rsvp.reset()
        self.position = self._initial_position(self.mode)
        self._emit("position", **position_to_dict(self.position))
        if self.mode == PlaybackMode.PAGING:
            self._publish_page(0, self.paginator.total_pages)
        self._emit_status()

    def advance_page(self, direction: int) -> bool:
        if self.mode != PlaybackMode.PAGING:
            return False
        return self.paginator.advance(1 if direction > 0 else -1)

    def jump_to_line(self, line_index: int) -> bool:
        """Manual jump while paused; keeps the voice anchor in sync."""
        if not self.scroller.jump_to_line(line_index):
            return False
        self.alignment.set_current_line(line_index)
        if self.mode == PlaybackMode.VOICE:
            self._set_position(VoicePosition(line_index))
        return True

    def navigate_line(self, direction: int) -> bool:
        last: int = max(0, self.index.line_count - 1)
        target: int = max(0, min(last, self.scroller.active_line + direction))
        return self.jump_to_line(target)

    def wheel(self, delta_y: float) -> bool:
        if self.mode not in (PlaybackMode.CONTINUOUS, PlaybackMode.VOICE):
            return False
        return self.scroller.wheel(delta_y)

    def toggle_cue_point(self, line_index: int | None = None) -> bool:
        """Toggle a cue point (on the active line by default). Returns new state."""
        if line_index is None:
            line_index = self.scroller.active_line
        if line_index in self.cue_points:
            self.cue_points.discard(line_index)
            marked = False
        else:
            self.cue_points.add(line_index)
            marked = True
        self._emit("cue_points", cue_points=sorted(self.cue_points))
        return marked

    def jump_to_cue(self, direction: int) -> bool:
        """Jump to the next (+1) or previous (-1) cue point from the active line."""
        if self.scroller.is_scrolling:
            return False
        active: int = self.scroller.active_line
        if direction > 0:
            later = [c for c in sorted(self.cue_points) if c > active]
            target = later[0] if later else None
        else:
            earlier = [c for c in sorted(self.cue_points) if c < active]
            target = earlier[-1] if earlier else None
        if target is None:
            return False
        return self.jump_to_line(target)

    def go_to_word(self, index: int) -> bool:
        if self.mode != PlaybackMode.RSVP:
            return False
        return self.rsvp.go_to_word(index)

    # ---- speed --------------------------------------------------------------

    def set_scroll_speed(self, lines_per_second: float) -> float:
        speed = self.scroller.set_speed(lines_per_second)
        self._emit("speed", scroll_speed=speed, rsvp_speed=self.rsvp.wpm)
        return speed

    def adjust_scroll_speed(self, steps: int) -> float:
        speed = self.scroller.adjust_speed(steps)
        self._emit("speed", scroll_speed=speed, rsvp_speed=self.rsvp.wpm)
        return speed

    def set_rsvp_speed(self, wpm: float) -> int:
        speed = self.rsvp.set_speed(wpm)
        self._emit("speed", scroll_speed=self.scroller.speed, rsvp_speed=speed)
        return speed

    def adjust_rsvp_speed(self, delta: float) -> int:
        return self.set_rsvp_speed(self.rsvp.wpm + delta)

    def set_language(self, language: str) -> None:
        self.alignment.set_language(language)

    # ---- engine callbacks -----------------------------------------------------

    def _on_offset_change(self, offset: float) -> None:
        self._set_position(ContinuousPosition(offset))

    def _on_scroller_state(self, state: ScrollerState) -> None:
        self._emit_status()

    def _on_countdown_tick(self, remaining: int) -> None:
        self._emit("countdown", remaining=remaining)

    def _on_active_line_change(self, line_index: int) -> None:
        self._emit("active_line", line_index=line_index)
        if self.mode != PlaybackMode.PAGING:
            self._update_page_indicator()

    def _on_ended(self) -> None:
        self._emit("ended", mode=self.mode.value)
        self._emit_status()

    def _on_page_turned(self, page: int, total: int) -> None:
        self._set_position(PagingPosition(page))
        self._publish_page(page, total)

    def _on_page_offset(self, offset: float) -> None:
        self._emit("page_offset", offset=offset)

    def _on_page_settled(self, offset: float) -> None:
        metrics = self.scroller.metrics
        self.scroller.set_active_line(metrics.line_at_center(offset))

    def _on_rsvp_word(self, index: int, word: str) -> None:
        self._set_position(RSVPPosition(index))
        self._emit("word", index=index, word=word, progress=self.rsvp.progress)

    def _on_rsvp_complete(self) -> None:
        self._emit("ended", mode=PlaybackMode.RSVP.value)
        self._emit_status()

    def _on_voice_match(self, line_index: int) -> None:
        self.scroller.set_active_line(line_index)
        self.scroller.scroll_to_line(line_index, manual=True)
        self._set_position(VoicePosition(line_index))
        self._emit("alignment_matched", line_index=line_index)

    def _on_recognized_text(self, text: str) -> None:
        self._show_caption(text)

    def _on_confidence(self, confidence: float) -> None:
        self._emit("confidence", confidence=confidence)

    def _on_level(self, level: float) -> None:
        self._emit("level", level=level)

    def _on_listening_change(self, listening: bool) -> None:
        self.is_listening = listening
        self._emit("listening", listening=listening)

    def _on_voice_error(self, error: VoiceError) -> None:
        logger.warning("Voice error (%s): %s", error.code, error)
        if (isinstance(error, (CapabilityError, MicrophonePermissionError))
                and self.mode == PlaybackMode.VOICE):
            logger.info("Falling back to continuous scrolling")
            self.set_mode(PlaybackMode.CONTINUOUS)
        self._emit("error", code=error.code, message=str(error),
                   retryable=error.retryable)
        # Switching modes clears the caption, so show the error afterwards
        self._show_caption(str(error))

    # ---- indicators -------------------------------------------------------------

    def _show_caption(self, text: str) -> None:
        self.caption = caption_text(text)
        self.caption_visible = True
        self._emit("recognized_text", text=self.caption)
        self._caption_timer.schedule(CAPTION_HIDE_MS, self._hide_caption)

    def _hide_caption(self) -> None:
        self.caption_visible = False
        self._emit("recognized_text", text="", visible=False)

    def _update_page_indicator(self) -> None:
        indicator = PageIndicator.for_line(
            self.scroller.active_line, self.index.line_count,
            lines_per_page(self._viewport_height, self._line_height))
        self._publish_page(indicator.current_page, indicator.total_pages)

    def _publish_page(self, page: int, total: int) -> None:
        if page == self.current_page and total == self.total_pages:
            return
        self.current_page = page
        self.total_pages = total
        self._emit("page_changed", current_page=page, total_pages=total)

    def _emit_status(self) -> None:
        self._emit(
            "status",
            mode=self.mode.value,
            playing=self.is_playing,
            counting_down=self.is_counting_down,
            listening=self.is_listening,
            ended=self.scroller.ended,
        )

    # ---- snapshots ----------------------------------------------------------------

    def playback_settings(self) -> dict[str, Any]:
        """Current settings in the shape of the config's playback section."""
        return {
            "mode": self.mode.value,
            "scroll_speed": self.scroller.speed,
            "rsvp_speed": self.rsvp.wpm,
            "max_words_per_line": self.index.max_words_per_line,
            "cue_points": sorted(self.cue_points),
        }

    def snapshot(self) -> dict[str, Any]:
        """Everything a newly connected client needs to render."""
        return {
            "mode": self.mode.value,
            "position": position_to_dict(self.position),
            "playing": self.is_playing,
            "counting_down": self.is_counting_down,
            "listening": self.is_listening,
            "ended": self.scroller.ended,
            "active_line": self.scroller.active_line,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "page_offset": self.paginator.current_offset(),
            "lines": self.index.line_texts,
            "cue_points": sorted(self.cue_points),
            "scroll_speed": self.scroller.speed,
            "rsvp_speed": self.rsvp.wpm,
            "caption": self.caption if self.caption_visible else "",
        }
