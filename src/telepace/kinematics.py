"""
Continuous-scroll kinematics.

Drives a vertical offset (negative values scroll content upwards) with a
countdown, a sine ramp-up, steady motion, a cosine ramp-down and automatic
stop at the end of the content. Also owns eased seeks for manual navigation
and wheel input while paused.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .config import SCROLL_SPEED_RANGE, SCROLL_SPEED_STEP
from .scheduler import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS: int = 3
COUNTDOWN_TICK_MS: float = 1000.0
RAMP_DURATION_MS: float = 1000.0
END_THRESHOLD_PX: float = 5.0
SMOOTH_SCROLL_EASING: float = 0.15
SMOOTH_SCROLL_SNAP_PX: float = 0.5
ACTIVE_LINE_UPDATE_MS: float = 100.0
DEFAULT_SCROLL_SPEED: float = 1.5


class ScrollerState(Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    RAMPING_UP = "ramping_up"
    STEADY = "steady"
    RAMPING_DOWN = "ramping_down"


class RampDirection(Enum):
    UP = "up"
    DOWN = "down"
    NONE = "none"


@dataclass
class RampState:
    direction: RampDirection = RampDirection.NONE
    start_timestamp: float = 0.0


@dataclass
class ContentMetrics:
    """Pixel geometry of the laid-out script."""
    line_height: float = 0.0
    viewport_height: float = 0.0
    content_height: float = 0.0
    line_count: int = 0
    top_padding: float = 0.0  # space above the first line

    @classmethod
    def for_lines(cls, line_count: int, line_height: float, viewport_height: float,
                  top_padding: float = 0.0) -> 'ContentMetrics':
        """Metrics for uniform lines with equal padding above and below."""
        return cls(
            line_height=max(0.0, line_height),
            viewport_height=max(0.0, viewport_height),
            content_height=2 * max(0.0, top_padding) + max(0, line_count) * max(0.0, line_height),
            line_count=max(0, line_count),
            top_padding=max(0.0, top_padding),
        )

    @property
    def max_scroll(self) -> float:
        """Largest offset magnitude that still keeps content on screen."""
        return max(0.0, self.content_height - self.viewport_height)

    def clamp(self, offset: float) -> float:
        return max(-self.max_scroll, min(0.0, offset))

    def line_center(self, line_index: int) -> float:
        return self.top_padding + line_index * self.line_height + self.line_height / 2

    def line_at_center(self, offset: float) -> int:
        """Index of the line whose center is nearest the viewport center."""
        if self.line_count <= 0 or self.line_height <= 0:
            return 0
        position: float = (self.viewport_height / 2 - offset - self.top_padding
                           - self.line_height / 2) / self.line_height
        # Halfway between two lines resolves to the earlier one
        index: int = math.ceil(position - 0.5)
        return max(0, min(self.line_count - 1, index))


def _ignore(*_args: object) -> None:
    pass


@dataclass
class ScrollerCallbacks:
    on_offset_change: Callable[[float], None] = _ignore
    on_state_change: Callable[[ScrollerState], None] = _ignore
    on_countdown_tick: Callable[[int], None] = _ignore  # 3, 2, 1; 0 = cleared
    on_active_line_change: Callable[[int], None] = _ignore
    on_ended: Callable[[], None] = _ignore


def clamp_speed(speed: float) -> float:
    low, high = SCROLL_SPEED_RANGE
    if math.isnan(speed):
        return DEFAULT_SCROLL_SPEED
    return max(low, min(high, speed))


class KinematicScroller:
    """
    Per-frame scroll controller for continuous mode.

    idle -> counting_down -> ramping_up -> steady -> ramping_down -> idle.
    Reaching the end of the content stops immediately and marks the script
    as ended; the next play() starts again from the top.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        metrics: ContentMetrics | None = None,
        speed: float = DEFAULT_SCROLL_SPEED,
        callbacks: ScrollerCallbacks | None = None,
        countdown_seconds: int = COUNTDOWN_SECONDS,
        ramp_duration_ms: float = RAMP_DURATION_MS,
        end_threshold_px: float = END_THRESHOLD_PX,
        smooth_scroll_easing: float = SMOOTH_SCROLL_EASING,
        smooth_scroll_snap_px: float = SMOOTH_SCROLL_SNAP_PX,
        active_line_update_ms: float = ACTIVE_LINE_UPDATE_MS
    ) -> None:
        self.scheduler = scheduler
        self.metrics = metrics or ContentMetrics()
        self.speed = clamp_speed(speed)
        self.callbacks = callbacks or ScrollerCallbacks()
        self.countdown_seconds = max(0, countdown_seconds)
        self.ramp_duration_ms = max(0.0, ramp_duration_ms)
        self.end_threshold_px = end_threshold_px
        self.smooth_scroll_easing = min(1.0, max(0.01, smooth_scroll_easing))
        self.smooth_scroll_snap_px = smooth_scroll_snap_px
        self.active_line_update_ms = active_line_update_ms

        self.state: ScrollerState = ScrollerState.IDLE
        self.ramp: RampState = RampState()
        self.offset: float = 0.0
        self.target_offset: float = 0.0
        self.ended: bool = False
        self.active_line: int = 0
        self.countdown_remaining: int = 0
        self.manual_navigation: bool = False

        self._last_timestamp: float = 0.0
        self._last_active_line_update: float | None = None

        self._frame = TimerSlot(scheduler, "scroll-frame")
        self._seek_frame = TimerSlot(scheduler, "seek-frame")
        self._countdown = TimerSlot(scheduler, "countdown")
        self._ramp_down = TimerSlot(scheduler, "ramp-down")

    # ---- status -----------------------------------------------------------

    @property
    def is_scrolling(self) -> bool:
        return self.state in (ScrollerState.RAMPING_UP, ScrollerState.STEADY,
                              ScrollerState.RAMPING_DOWN)

    @property
    def is_counting_down(self) -> bool:
        return self.state == ScrollerState.COUNTING_DOWN

    @property
    def is_seeking(self) -> bool:
        return self._seek_frame.active

    @property
    def has_pending_work(self) -> bool:
        return any(slot.active for slot in
                   (self._frame, self._seek_frame, self._countdown, self._ramp_down))

    def _set_state(self, state: ScrollerState) -> None:
        if state != self.state:
            self.state = state
            self.callbacks.on_state_change(state)

    def _set_offset(self, offset: float) -> None:
        self.offset = self.metrics.clamp(offset)
        self.callbacks.on_offset_change(self.offset)

    def set_active_line(self, line_index: int) -> None:
        if self.metrics.line_count > 0:
            line_index = max(0, min(self.metrics.line_count - 1, line_index))
        else:
            line_index = 0
        if line_index != self.active_line:
            self.active_line = line_index
            self.callbacks.on_active_line_change(line_index)

    def _update_active_line(self) -> None:
        if self.manual_navigation:
            return
        self.set_active_line(self.metrics.line_at_center(self.offset))

    # ---- settings ---------------------------------------------------------

    def set_metrics(self, metrics: ContentMetrics) -> None:
        """Replace the layout geometry (e.g. after a resize or script edit)."""
        self.metrics = ContentMetrics(
            line_height=max(0.0, metrics.line_height),
            viewport_height=max(0.0, metrics.viewport_height),
            content_height=max(0.0, metrics.content_height),
            line_count=max(0, metrics.line_count),
            top_padding=max(0.0, metrics.top_padding),
        )
        self.offset = self.metrics.clamp(self.offset)
        self.target_offset = self.metrics.clamp(self.target_offset)
        if self.metrics.line_count and self.active_line >= self.metrics.line_count:
            self.set_active_line(self.metrics.line_count - 1)

    def set_speed(self, speed: float) -> float:
        """Set lines per second, clamped to the supported range."""
        self.speed = clamp_speed(speed)
        return self.speed

    def adjust_speed(self, steps: int) -> float:
        """Nudge speed by whole steps of 0.1 lines/s."""
        return self.set_speed(round(self.speed + steps * SCROLL_SPEED_STEP, 1))

    # ---- play / pause -------------------------------------------------------

    def toggle(self) -> None:
        if self.state == ScrollerState.COUNTING_DOWN:
            self.cancel_countdown()
        elif self.state == ScrollerState.RAMPING_DOWN:
            return
        elif self.is_scrolling:
            self.pause()
        else:
            self.play()

    def play(self) -> bool:
        """Start the countdown. Returns False if already running."""
        if self.state != ScrollerState.IDLE:
            return False

        self._seek_frame.cancel()
        self.manual_navigation = False
        if self.ended:
            self.ended = False
            self.target_offset = 0.0
            self._set_offset(0.0)
            self.set_active_line(0)

        if self.countdown_seconds == 0:
            self._begin_scrolling()
            return True

        self.countdown_remaining = self.countdown_seconds
        self._set_state(ScrollerState.COUNTING_DOWN)
        self.callbacks.on_countdown_tick(self.countdown_remaining)
        self._countdown.schedule(COUNTDOWN_TICK_MS, self._countdown_tick)
        return True

    def _countdown_tick(self) -> None:
        if self.state != ScrollerState.COUNTING_DOWN:
            return
        self.countdown_remaining -= 1
        if self.countdown_remaining > 0:
            self.callbacks.on_countdown_tick(self.countdown_remaining)
            self._countdown.schedule(COUNTDOWN_TICK_MS, self._countdown_tick)
        else:
            self.callbacks.on_countdown_tick(0)
            self._begin_scrolling()

    def cancel_countdown(self) -> None:
        self._countdown.cancel()
        if self.state == ScrollerState.COUNTING_DOWN:
            self.countdown_remaining = 0
            self.callbacks.on_countdown_tick(0)
            self._set_state(ScrollerState.IDLE)

    def _begin_scrolling(self) -> None:
        now: float = self.scheduler.now()
        self.ramp = RampState(RampDirection.UP, now)
        self._last_timestamp = now
        self._last_active_line_update = None
        self._set_state(ScrollerState.RAMPING_UP)
        self._frame.request_frame(self._on_frame)

    def pause(self) -> bool:
        """Begin the ramp-down. Returns False if not scrolling."""
        if self.state not in (ScrollerState.RAMPING_UP, ScrollerState.STEADY):
            return False
        self.ramp = RampState(RampDirection.DOWN, self.scheduler.now())
        self._set_state(ScrollerState.RAMPING_DOWN)
        self._ramp_down.schedule(self.ramp_duration_ms, self._halt)
        return True

    def stop(self) -> None:
        """Stop immediately, cancelling every timer and frame."""
        self._countdown.cancel()
        self._ramp_down.cancel()
        self._seek_frame.cancel()
        self.countdown_remaining = 0
        self.manual_navigation = False
        self._halt()

    def _halt(self) -> None:
        self._frame.cancel()
        self._ramp_down.cancel()
        self.ramp = RampState()
        self._set_state(ScrollerState.IDLE)

    def ramp_multiplier(self, timestamp: float) -> float:
        """Speed multiplier in [0, 1] for the current ramp."""
        if self.ramp.direction == RampDirection.UP:
            elapsed: float = timestamp - self.ramp.start_timestamp
            if self.ramp_duration_ms <= 0 or elapsed >= self.ramp_duration_ms:
                self.ramp = RampState()
                self._set_state(ScrollerState.STEADY)
                return 1.0
            return math.sin(elapsed / self.ramp_duration_ms * (math.pi / 2))

        if self.ramp.direction == RampDirection.DOWN:
            elapsed = timestamp - self.ramp.start_timestamp
            if self.ramp_duration_ms <= 0 or elapsed >= self.ramp_duration_ms:
                return 0.0
            return math.cos(elapsed / self.ramp_duration_ms * (math.pi / 2))

        return 1.0

    def is_at_end(self) -> bool:
        return (abs(self.offset) + self.metrics.viewport_height
                >= self.metrics.content_height - self.end_threshold_px)

    def _on_frame(self, timestamp: float) -> None:
        if not self.is_scrolling:
            return

        elapsed: float = max(0.0, timestamp - self._last_timestamp)
        self._last_timestamp = timestamp

        pixels_per_second: float = (self.metrics.line_height * self.speed
                                    * self.ramp_multiplier(timestamp))
        self._set_offset(self.offset - elapsed * pixels_per_second / 1000.0)
        self.target_offset = self.offset

        if (self._last_active_line_update is None
                or timestamp - self._last_active_line_update > self.active_line_update_ms):
            self._last_active_line_update = timestamp
            self._update_active_line()

        if self.is_at_end() and not self.ended:
            logger.info("Reached end of script")
            self._halt()
            self.ended = True
            self.callbacks.on_ended()
            return

        self._frame.request_frame(self._on_frame)

    # ---- seeking --------------------------------------------------------------

    def scroll_to_line(self, line_index: int, smooth: bool = True,
                       manual: bool = False) -> bool:
        """
        Center a line in the viewport.

        Returns:
            False if the line does not exist (nothing moves).
        """
        if (line_index < 0 or line_index >= self.metrics.line_count
                or self.metrics.line_height <= 0):
            self.manual_navigation = False
            return False

        self.manual_navigation = manual
        self.target_offset = self.metrics.clamp(
            self.metrics.viewport_height / 2 - self.metrics.line_center(line_index))

        if smooth:
            self._start_seek()
        else:
            self._seek_frame.cancel()
            self._set_offset(self.target_offset)
            self.manual_navigation = False
        return True

    def jump_to_line(self, line_index: int) -> bool:
        """Manual navigation to a line while paused."""
        if self.is_scrolling or self.is_counting_down:
            return False
        self.ended = False
        if not self.scroll_to_line(line_index, manual=True):
            return False
        self.set_active_line(line_index)
        return True

    def navigate_line(self, direction: int) -> bool:
        """Move the active line up (-1) or down (+1) while paused."""
        if self.is_scrolling or self.is_counting_down:
            return False
        last: int = max(0, self.metrics.line_count - 1)
        return self.jump_to_line(max(0, min(last, self.active_line + direction)))

    def wheel(self, delta_y: float) -> bool:
        """Wheel input while paused; positive delta scrolls towards the end."""
        if self.is_scrolling:
            return False
        if delta_y < 0 and self.ended:
            self.ended = False
        self.target_offset = self.metrics.clamp(self.target_offset - delta_y)
        self._start_seek()
        return True

    def _start_seek(self) -> None:
        self._seek_frame.request_frame(self._on_seek_frame)

    def _on_seek_frame(self, _timestamp: float) -> None:
        distance: float = self.target_offset - self.offset
        if abs(distance) < self.smooth_scroll_snap_px:
            self._set_offset(self.target_offset)
            self._update_active_line()
            self.manual_navigation = False
            return

        self._set_offset(self.offset + distance * self.smooth_scroll_easing)
        self._update_active_line()
        self._seek_frame.request_frame(self._on_seek_frame)

    def back_to_top(self) -> None:
        """Stop everything and return to the first line."""
        self.stop()
        self.ended = False
        self.target_offset = 0.0
        self._set_offset(0.0)
        self.set_active_line(0)
