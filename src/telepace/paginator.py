"""
Page-at-a-time presentation.

Pages overlap slightly so the last lines of one page are still visible at
the top of the next. Page changes animate over a fixed duration with an
ease-out curve; the active line is recomputed once the transition settles.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

from .scheduler import Scheduler, TimerSlot

logger = logging.getLogger(__name__)

PAGING_OVERLAP: float = 0.1
PAGING_TRANSITION_MS: float = 400.0


def page_height(viewport_height: float, overlap: float = PAGING_OVERLAP) -> float:
    """Distance scrolled by one page turn."""
    return viewport_height * (1 - overlap)


def compute_total_pages(content_height: float, viewport_height: float,
                        overlap: float = PAGING_OVERLAP) -> int:
    """Number of pages needed to show all content; always at least 1."""
    height: float = page_height(viewport_height, overlap)
    if height <= 0 or content_height <= 0:
        return 1
    return max(1, math.ceil(content_height / height))


def advance(current: int, direction: int, total_pages: int) -> int:
    """Page after moving by direction; unchanged if that would leave [0, total)."""
    new_page: int = current + direction
    if new_page < 0 or new_page >= total_pages:
        return current
    return new_page


def page_offset(page_index: int, viewport_height: float,
                overlap: float = PAGING_OVERLAP) -> float:
    """Scroll offset that shows a page (negative, content moves up)."""
    return -page_index * page_height(viewport_height, overlap)


def lines_per_page(viewport_height: float, line_height: float) -> int:
    """Whole lines visible in the viewport, for the page indicator."""
    if line_height <= 0:
        return 10
    return max(1, math.floor(viewport_height / line_height))


@dataclass(frozen=True)
class PageIndicator:
    current_page: int
    total_pages: int

    @classmethod
    def for_line(cls, active_line: int, line_count: int, per_page: int) -> 'PageIndicator':
        per_page = max(1, per_page)
        return cls(
            current_page=max(0, active_line) // per_page,
            total_pages=max(1, math.ceil(max(1, line_count) / per_page)),
        )


def ease_out(progress: float) -> float:
    """Quadratic ease-out on [0, 1]."""
    progress = max(0.0, min(1.0, progress))
    return 1 - (1 - progress) ** 2


@dataclass
class PageTransition:
    from_offset: float
    to_offset: float
    start_ms: float
    duration_ms: float

    def offset_at(self, now_ms: float) -> float:
        if self.duration_ms <= 0:
            return self.to_offset
        progress: float = (now_ms - self.start_ms) / self.duration_ms
        return self.from_offset + (self.to_offset - self.from_offset) * ease_out(progress)


def _ignore(*_args: object) -> None:
    pass


class Paginator:
    """Tracks the current page and animates page changes."""

    def __init__(
        self,
        scheduler: Scheduler,
        overlap: float = PAGING_OVERLAP,
        transition_ms: float = PAGING_TRANSITION_MS,
        on_page_changed: Callable[[int, int], None] = _ignore,
        on_transition_complete: Callable[[float], None] = _ignore,
        on_offset_change: Callable[[float], None] = _ignore
    ) -> None:
        self.scheduler = scheduler
        self.overlap = overlap
        self.transition_ms = transition_ms
        self.on_page_changed = on_page_changed
        # Receives the settled offset
        self.on_transition_complete = on_transition_complete
        # Receives the eased offset on every animation frame
        self.on_offset_change = on_offset_change

        self.current_page: int = 0
        self.total_pages: int = 1
        self.viewport_height: float = 0.0
        self.content_height: float = 0.0
        self.offset: float = 0.0
        self.transition: PageTransition | None = None
        self._transition_frame = TimerSlot(scheduler, "page-transition")

    @property
    def is_transitioning(self) -> bool:
        return self._transition_frame.active

    def set_metrics(self, content_height: float, viewport_height: float) -> int:
        """Recompute the page count for new geometry; returns the total."""
        self.content_height = max(0.0, content_height)
        self.viewport_height = max(0.0, viewport_height)
        self.total_pages = compute_total_pages(
            self.content_height, self.viewport_height, self.overlap)
        if self.current_page >= self.total_pages:
            self.current_page = self.total_pages - 1
        return self.total_pages

    def current_offset(self) -> float:
        if self.transition is not None and self.is_transitioning:
            return self.transition.offset_at(self.scheduler.now())
        return self.offset

    def advance(self, direction: int) -> bool:
        """Turn one page forward (+1) or back (-1). False at a boundary."""
        new_page: int = advance(self.current_page, direction, self.total_pages)
        if new_page == self.current_page:
            return False
        self.current_page = new_page
        self.scroll_to_page(new_page)
        self.on_page_changed(new_page, self.total_pages)
        return True

    def scroll_to_page(self, page_index: int) -> None:
        """Animate to a page without emitting page-changed."""
        target: float = page_offset(page_index, self.viewport_height, self.overlap)
        self.transition = PageTransition(
            from_offset=self.current_offset(),
            to_offset=target,
            start_ms=self.scheduler.now(),
            duration_ms=self.transition_ms,
        )
        self.offset = target
        self._transition_frame.request_frame(self._on_frame)

    def _on_frame(self, timestamp: float) -> None:
        transition = self.transition
        if transition is None:
            return
        self.on_offset_change(transition.offset_at(timestamp))
        if timestamp - transition.start_ms >= transition.duration_ms:
            self._finish_transition()
            return
        self._transition_frame.request_frame(self._on_frame)

    def _finish_transition(self) -> None:
        self.transition = None
        logger.debug("Page transition settled at page %d", self.current_page)
        self.on_transition_complete(self.offset)

    def reset(self) -> None:
        """Back to page 0 immediately."""
        self.cancel()
        self.current_page = 0
        self.offset = 0.0

    def cancel(self) -> None:
        self._transition_frame.cancel()
        self.transition = None
