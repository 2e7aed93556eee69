"""
Tests for page-at-a-time presentation.
"""

from unittest import mock

import pytest

from telepace.paginator import (
    PageIndicator,
    Paginator,
    advance,
    compute_total_pages,
    ease_out,
    lines_per_page,
    page_offset,
)
from telepace.scheduler import ManualScheduler


class TestPageMath:
    """Tests for the pure paging helpers."""

    def test_total_pages(self) -> None:
        # Each page turn moves 90% of the 400px viewport
        assert compute_total_pages(1000.0, 400.0) == 3
        assert compute_total_pages(360.0, 400.0) == 1
        assert compute_total_pages(361.0, 400.0) == 2
        # 300px viewport: 270px per page
        assert compute_total_pages(1000.0, 300.0, 0.1) == 4
        assert page_offset(1, 300.0) == pytest.approx(-270.0)

    def test_total_pages_is_at_least_one(self) -> None:
        assert compute_total_pages(0.0, 400.0) == 1
        assert compute_total_pages(1000.0, 0.0) == 1

    def test_advance_stays_in_range(self) -> None:
        assert advance(0, 1, 3) == 1
        assert advance(2, 1, 3) == 2
        assert advance(0, -1, 3) == 0

    def test_page_offset(self) -> None:
        assert page_offset(0, 400.0) == 0.0
        assert page_offset(2, 400.0) == pytest.approx(-720.0)

    def test_lines_per_page(self) -> None:
        assert lines_per_page(400.0, 40.0) == 10
        assert lines_per_page(10.0, 40.0) == 1
        assert lines_per_page(400.0, 0.0) == 10

    def test_page_indicator(self) -> None:
        assert PageIndicator.for_line(25, 100, 10) == PageIndicator(2, 10)
        assert PageIndicator.for_line(0, 0, 10) == PageIndicator(0, 1)

    def test_ease_out(self) -> None:
        assert ease_out(0.0) == 0.0
        assert ease_out(0.5) == 0.75
        assert ease_out(1.0) == 1.0
        assert ease_out(2.0) == 1.0


class TestPaginator:
    """Tests for page turns and their transitions."""

    @pytest.fixture
    def paginator(self, scheduler: ManualScheduler) -> Paginator:
        paginator = Paginator(
            scheduler,
            on_page_changed=mock.Mock(),
            on_transition_complete=mock.Mock(),
            on_offset_change=mock.Mock(),
        )
        paginator.set_metrics(1000.0, 400.0)
        return paginator

    def test_advance_emits_page_changed(self, paginator: Paginator) -> None:
        assert paginator.total_pages == 3
        assert paginator.advance(1)
        paginator.on_page_changed.assert_called_once_with(1, 3)
        assert paginator.current_page == 1

    def test_boundaries(self, paginator: Paginator, scheduler: ManualScheduler) -> None:
        assert not paginator.advance(-1)
        paginator.advance(1)
        paginator.advance(1)
        assert not paginator.advance(1)
        assert paginator.current_page == 2
        assert paginator.on_page_changed.call_count == 2

    def test_transition_eases_out(self, paginator: Paginator,
                                  scheduler: ManualScheduler) -> None:
        paginator.advance(1)
        scheduler.advance(200)
        assert paginator.current_offset() == pytest.approx(-270.0)

        scheduler.advance(200)
        assert not paginator.is_transitioning
        assert paginator.current_offset() == pytest.approx(-360.0)
        paginator.on_transition_complete.assert_called_once_with(pytest.approx(-360.0))

    def test_turn_during_transition_starts_from_current(self, paginator: Paginator,
                                                        scheduler: ManualScheduler) -> None:
        paginator.advance(1)
        scheduler.advance(200)
        paginator.advance(1)

        assert paginator.transition is not None
        assert paginator.transition.from_offset == pytest.approx(-270.0)
        assert paginator.transition.to_offset == pytest.approx(-720.0)

        scheduler.run_until_idle()
        paginator.on_transition_complete.assert_called_once()

    def test_transition_reports_each_frame(self, paginator: Paginator,
                                           scheduler: ManualScheduler) -> None:
        paginator.advance(1)
        scheduler.advance(200)

        offsets = [c.args[0] for c in paginator.on_offset_change.call_args_list]
        # One frame every 16ms up to 192ms
        assert len(offsets) == 12
        assert offsets[0] == pytest.approx(-360.0 * ease_out(16 / 400))
        assert all(a > b for a, b in zip(offsets, offsets[1:]))
        assert -360.0 < offsets[-1] < -200.0

        scheduler.advance(200)
        assert paginator.on_offset_change.call_args.args[0] == pytest.approx(-360.0)

    def test_shrinking_content_clamps_page(self, paginator: Paginator) -> None:
        paginator.advance(1)
        paginator.advance(1)
        assert paginator.set_metrics(300.0, 400.0) == 1
        assert paginator.current_page == 0

    def test_reset_cancels_transition(self, paginator: Paginator,
                                      scheduler: ManualScheduler) -> None:
        paginator.advance(1)
        paginator.reset()

        assert paginator.current_page == 0
        assert paginator.current_offset() == 0.0
        assert scheduler.pending == 0
        paginator.on_transition_complete.assert_not_called()
