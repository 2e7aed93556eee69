"""
Tests for one-word-at-a-time presentation.
"""

from unittest import mock

import pytest

from telepace.rsvp import (
    RSVPScheduler,
    calculate_delay,
    calculate_orp,
    clamp_wpm,
    graphemes,
    split_for_display,
)
from telepace.scheduler import ManualScheduler


class TestOptimalRecognitionPoint:
    """Tests for locating the fixation letter."""

    @pytest.mark.parametrize("word, expected", [
        ("a", 0),
        ("cat", 0),
        ("hello", 1),
        ("recognition", 3),
        ("...", 0),
        ("", 0),
    ])
    def test_calculate_orp(self, word: str, expected: int) -> None:
        assert calculate_orp(word) == expected

    def test_leading_punctuation_counts_toward_index(self) -> None:
        """Punctuation is skipped when measuring, but not when indexing."""
        assert calculate_orp("“Hello,”") == 2
        assert calculate_orp("(word)") == 2

    def test_split_for_display(self) -> None:
        assert split_for_display("hello") == ("h", "e", "llo")
        assert split_for_display("") == ("", "", "")

    def test_combining_marks_stay_together(self) -> None:
        """A base letter and its combining accent form one grapheme."""
        word = "nai\u0308ve"
        assert len(graphemes(word)) == 5
        assert split_for_display(word) == ("n", "a", "i\u0308ve")

    @pytest.mark.parametrize("cluster", [
        "\U0001F1FA\U0001F1F8",  # regional indicator flag
        "1\uFE0F\u20E3",  # keycap
        "\U0001F468\u200D\U0001F469\u200D\U0001F467",  # ZWJ family
        "\U0001F44D\U0001F3FD",  # skin tone modifier
        "\u1100\u1161\u11A8",  # Hangul jamo syllable
    ])
    def test_clusters_count_as_one(self, cluster: str) -> None:
        assert graphemes(cluster) == [cluster]

    def test_flags_are_not_split(self) -> None:
        flag = "\U0001F1FA\U0001F1F8"
        assert len(graphemes(flag * 4)) == 4
        assert calculate_orp(flag * 4) == 1
        assert split_for_display(flag * 4) == (flag, flag, flag * 2)


class TestDelays:
    """Tests for per-word display time."""

    def test_plain_word(self) -> None:
        assert calculate_delay("word", 300) == 200

    def test_minor_punctuation(self) -> None:
        assert calculate_delay("Hello,", 300) == pytest.approx(300)

    def test_major_punctuation(self) -> None:
        assert calculate_delay("end.", 300) == pytest.approx(400)
        assert calculate_delay("好。", 300) == pytest.approx(400)

    def test_never_shorter_than_base(self) -> None:
        """Multipliers below one are floored so punctuation never speeds up."""
        assert calculate_delay("end.", 300, major_multiplier=0.5) == 200
        assert calculate_delay("so,", 300, minor_multiplier=0.2) == 200

    def test_out_of_range_wpm_is_clamped(self) -> None:
        assert calculate_delay("word", 0) == 1200
        assert calculate_delay("word", -5) == 1200
        assert calculate_delay("word", 10_000) == 60

    def test_clamp_wpm(self) -> None:
        assert clamp_wpm(10) == 50
        assert clamp_wpm(5000) == 1000
        assert clamp_wpm(299.6) == 300


class TestRSVPScheduler:
    """Tests for word sequencing."""

    @pytest.fixture
    def rsvp(self, scheduler: ManualScheduler) -> RSVPScheduler:
        rsvp = RSVPScheduler(scheduler, wpm=300, on_word=mock.Mock(), on_complete=mock.Mock())
        rsvp.set_words("one two. three")
        rsvp.on_word.reset_mock()
        return rsvp

    def shown(self, rsvp: RSVPScheduler) -> list[int]:
        return [c.args[0] for c in rsvp.on_word.call_args_list]

    def test_words_follow_their_delays(self, rsvp: RSVPScheduler,
                                       scheduler: ManualScheduler) -> None:
        assert rsvp.start()
        assert self.shown(rsvp) == [0]

        scheduler.advance(200)
        assert self.shown(rsvp) == [0, 1]
        scheduler.advance(399)
        assert rsvp.current_index == 1
        scheduler.advance(1)
        assert rsvp.current_word == "three"

    def test_last_word_held_before_complete(self, rsvp: RSVPScheduler,
                                            scheduler: ManualScheduler) -> None:
        rsvp.start()
        scheduler.advance(799)
        rsvp.on_complete.assert_not_called()
        scheduler.advance(1)
        rsvp.on_complete.assert_called_once()
        assert not rsvp.is_playing
        assert rsvp.progress == 100.0
        assert scheduler.pending == 0

    def test_start_after_complete_restarts(self, rsvp: RSVPScheduler,
                                           scheduler: ManualScheduler) -> None:
        rsvp.start()
        scheduler.run_until_idle()
        rsvp.start()
        assert rsvp.current_index == 0
        assert rsvp.is_playing

    def test_pause_and_resume(self, rsvp: RSVPScheduler, scheduler: ManualScheduler) -> None:
        rsvp.start()
        scheduler.advance(250)
        rsvp.toggle()
        assert not rsvp.is_playing
        assert scheduler.pending == 0

        scheduler.advance(5000)
        assert rsvp.current_index == 1
        rsvp.toggle()
        assert rsvp.is_playing
        assert rsvp.current_index == 1

    def test_go_to_word(self, rsvp: RSVPScheduler) -> None:
        assert rsvp.go_to_word(2)
        assert rsvp.current_word == "three"
        assert rsvp.go_to_word(99)
        assert rsvp.current_index == 2

        rsvp.start()
        assert not rsvp.go_to_word(0)
        assert rsvp.current_index == 2

    def test_set_words_while_playing_restarts(self, rsvp: RSVPScheduler,
                                              scheduler: ManualScheduler) -> None:
        rsvp.start()
        scheduler.advance(300)
        rsvp.set_words("alpha beta")

        assert rsvp.is_playing
        assert rsvp.current_word == "alpha"
        assert rsvp.total_words == 2

    def test_speed_change_applies_to_next_word(self, rsvp: RSVPScheduler,
                                               scheduler: ManualScheduler) -> None:
        rsvp.start()
        assert rsvp.set_speed(600) == 600
        scheduler.advance(200)
        assert rsvp.current_index == 1
        scheduler.advance(200)
        assert rsvp.current_index == 2

    def test_adjust_speed(self, rsvp: RSVPScheduler) -> None:
        assert rsvp.adjust_speed(50) == 350
        assert rsvp.adjust_speed(-1000) == 50

    def test_progress(self, rsvp: RSVPScheduler) -> None:
        assert rsvp.progress == pytest.approx(100 / 3)

    def test_empty_text(self, scheduler: ManualScheduler) -> None:
        rsvp = RSVPScheduler(scheduler)
        rsvp.set_words("   ")
        assert not rsvp.start()
        assert rsvp.progress == 0.0
        assert rsvp.current_word == ""
