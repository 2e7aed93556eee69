"""
Tests for the recognition session lifecycle: start, stop, restarts with
backoff and giving up.
"""

from unittest import mock

import pytest

from telepace.alignment import AlignmentCallbacks, AlignmentEngine, AlignmentState
from telepace.errors import (
    CapabilityError,
    MicrophonePermissionError,
    RecoveryExhaustedError,
    TransientSessionError,
    UnsupportedError,
)
from telepace.scheduler import ManualScheduler

SCRIPT = "one two three\nfour five six\nseven eight nine"


@pytest.fixture
def callbacks() -> AlignmentCallbacks:
    return AlignmentCallbacks(
        on_scroll_to=mock.Mock(),
        on_recognized_text=mock.Mock(),
        on_confidence_change=mock.Mock(),
        on_error=mock.Mock(),
        on_status_change=mock.Mock(),
        on_level=mock.Mock(),
    )


@pytest.fixture
def engine(scheduler: ManualScheduler, session_factory, callbacks: AlignmentCallbacks) -> AlignmentEngine:
    engine = AlignmentEngine(scheduler, session_factory=session_factory, callbacks=callbacks)
    engine.update_script(SCRIPT)
    return engine


class TestStartStop:
    """Tests for opening and closing recognition sessions."""

    def test_start_opens_session(self, engine: AlignmentEngine, session_factory,
                                 callbacks: AlignmentCallbacks) -> None:
        assert engine.start()
        session = session_factory.latest
        assert session.started
        assert session.language == "en-US"
        assert engine.state == AlignmentState.LISTENING

        session.begin()
        callbacks.on_status_change.assert_called_once_with(True)

    def test_start_twice_is_noop(self, engine: AlignmentEngine, session_factory) -> None:
        engine.start()
        assert engine.start()
        assert len(session_factory.sessions) == 1

    def test_unsupported_without_factory(self, scheduler: ManualScheduler,
                                         callbacks: AlignmentCallbacks) -> None:
        """With no recognizer the engine reports UnsupportedError and stays idle."""
        engine = AlignmentEngine(scheduler, callbacks=callbacks)

        assert not engine.start()
        error = callbacks.on_error.call_args[0][0]
        assert isinstance(error, UnsupportedError)
        assert not error.retryable
        assert engine.state == AlignmentState.IDLE

    def test_capability_probe(self, scheduler: ManualScheduler, session_factory,
                              callbacks: AlignmentCallbacks) -> None:
        engine = AlignmentEngine(scheduler, session_factory=session_factory,
                                 callbacks=callbacks, is_supported=lambda: False)
        assert not engine.start()
        assert session_factory.sessions == []

    def test_stop_closes_everything(self, engine: AlignmentEngine, session_factory,
                                    scheduler: ManualScheduler,
                                    callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session = session_factory.latest
        session.begin()
        session.end()  # schedules a restart

        engine.stop()

        assert session.stopped is False  # already ended, nothing to stop
        assert scheduler.pending == 0
        assert engine.state == AlignmentState.IDLE
        callbacks.on_status_change.assert_called_with(False)
        scheduler.advance(10_000)
        assert len(session_factory.sessions) == 1

    def test_stop_stops_open_session(self, engine: AlignmentEngine, session_factory) -> None:
        engine.start()
        engine.stop()
        assert session_factory.latest.stopped
        assert engine.session is None

    def test_events_from_stopped_session_ignored(self, engine: AlignmentEngine, session_factory,
                                                 callbacks: AlignmentCallbacks) -> None:
        """A session that was replaced cannot move the anchor."""
        engine.start()
        old = session_factory.latest
        engine.stop()
        engine.start()

        old.final("seven eight")
        old.end()

        callbacks.on_scroll_to.assert_not_called()
        assert engine.last_matched_line == 0
        assert engine.state == AlignmentState.LISTENING

    def test_anchor_survives_stop_and_start(self, engine: AlignmentEngine, session_factory) -> None:
        engine.start()
        session_factory.latest.final("five")
        engine.stop()
        assert engine.last_matched_line == 1

        engine.start()
        assert engine.session is not None
        assert engine.session.last_matched_line == 1

    def test_language_used_for_next_session(self, engine: AlignmentEngine, session_factory) -> None:
        engine.set_language("de-DE")
        engine.start()
        assert session_factory.latest.language == "de-DE"


class TestResults:
    """Tests for transcript handling."""

    def test_final_result_aligns(self, engine: AlignmentEngine, session_factory,
                                 callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session_factory.latest.final("eight nine", confidence=0.8)

        callbacks.on_scroll_to.assert_called_once_with(2)
        callbacks.on_recognized_text.assert_called_once_with("eight nine")
        callbacks.on_confidence_change.assert_called_once_with(0.8)

    def test_partial_result_only_displays(self, engine: AlignmentEngine, session_factory,
                                          callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session_factory.latest.partial("eight")

        callbacks.on_recognized_text.assert_called_once_with("eight")
        callbacks.on_scroll_to.assert_not_called()
        assert engine.last_matched_line == 0

    def test_level_forwarded(self, engine: AlignmentEngine, session_factory,
                             callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session_factory.latest.callbacks.on_level(0.5)
        callbacks.on_level.assert_called_once_with(0.5)

    def test_results_ignored_when_idle(self, engine: AlignmentEngine, session_factory,
                                       callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session = session_factory.latest
        engine.stop()
        session.final("eight")
        callbacks.on_recognized_text.assert_not_called()


class TestRecovery:
    """Tests for restarting after unexpected session ends."""

    def test_backoff_delays(self, engine: AlignmentEngine) -> None:
        assert [engine.restart_delay(n) for n in range(6)] == [
            500, 1000, 2000, 4000, 5000, 5000]

    def test_restart_after_end(self, engine: AlignmentEngine, session_factory,
                               scheduler: ManualScheduler) -> None:
        engine.start()
        session_factory.latest.begin()
        session_factory.latest.end()

        assert engine.state == AlignmentState.RESTARTING
        scheduler.advance(499)
        assert len(session_factory.sessions) == 1
        scheduler.advance(1)
        assert len(session_factory.sessions) == 2
        assert engine.state == AlignmentState.LISTENING

    def test_gives_up_after_five_restarts(self, engine: AlignmentEngine, session_factory,
                                          scheduler: ManualScheduler,
                                          callbacks: AlignmentCallbacks) -> None:
        """Five restarts that never produce audio end in RecoveryExhaustedError."""
        engine.start()
        delays: list[float] = []
        for _ in range(5):
            session_factory.latest.end()
            before = scheduler.now()
            scheduler.run_until_idle()
            delays.append(scheduler.now() - before)

        assert delays == [500, 1000, 2000, 4000, 5000]
        assert len(session_factory.sessions) == 6

        session_factory.latest.end()

        assert engine.state == AlignmentState.STOPPED
        assert not engine.is_active()
        assert scheduler.pending == 0
        error = callbacks.on_error.call_args[0][0]
        assert isinstance(error, RecoveryExhaustedError)
        assert len(session_factory.sessions) == 6

    def test_successful_start_resets_attempts(self, engine: AlignmentEngine, session_factory,
                                              scheduler: ManualScheduler) -> None:
        engine.start()
        for _ in range(3):
            session_factory.latest.end()
            scheduler.run_until_idle()
        session_factory.latest.begin()
        assert engine.session is not None
        assert engine.session.restart_attempts == 0

        session_factory.latest.end()
        before = scheduler.now()
        scheduler.run_until_idle()
        assert scheduler.now() - before == 500

    def test_anchor_kept_across_restart(self, engine: AlignmentEngine, session_factory,
                                        scheduler: ManualScheduler) -> None:
        engine.start()
        session_factory.latest.final("four")
        session_factory.latest.end()
        scheduler.run_until_idle()

        assert engine.last_matched_line == 1
        session_factory.latest.final("seven")
        assert engine.last_matched_line == 2


class TestErrors:
    """Tests for session error codes."""

    def test_no_speech_is_not_an_error(self, engine: AlignmentEngine, session_factory,
                                       callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session_factory.latest.error("no-speech")
        callbacks.on_error.assert_not_called()
        assert engine.is_active()

    def test_permission_denied_stops(self, engine: AlignmentEngine, session_factory,
                                     scheduler: ManualScheduler,
                                     callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session = session_factory.latest
        session.error("not-allowed")

        error = callbacks.on_error.call_args[0][0]
        assert isinstance(error, MicrophonePermissionError)
        assert engine.state == AlignmentState.IDLE
        assert session.stopped

        session.end()
        assert scheduler.pending == 0

    def test_transient_error_restarts_on_end(self, engine: AlignmentEngine, session_factory,
                                             scheduler: ManualScheduler,
                                             callbacks: AlignmentCallbacks) -> None:
        engine.start()
        session_factory.latest.error("network")
        error = callbacks.on_error.call_args[0][0]
        assert isinstance(error, TransientSessionError)
        assert error.retryable

        session_factory.latest.end()
        scheduler.run_until_idle()
        assert len(session_factory.sessions) == 2

    def test_retryable_start_failure_schedules_restart(self, engine: AlignmentEngine,
                                                       session_factory,
                                                       scheduler: ManualScheduler) -> None:
        session_factory.start_errors.append(
            TransientSessionError("microphone busy", "audio-capture"))

        assert engine.start()
        assert engine.state == AlignmentState.RESTARTING
        scheduler.run_until_idle()
        assert len(session_factory.sessions) == 2
        assert session_factory.latest.started

    def test_capability_start_failure(self, engine: AlignmentEngine, session_factory,
                                      callbacks: AlignmentCallbacks) -> None:
        session_factory.start_errors.append(CapabilityError("no model"))

        assert not engine.start()
        assert isinstance(callbacks.on_error.call_args[0][0], CapabilityError)
        assert engine.state == AlignmentState.IDLE

    def test_unexpected_start_failure_is_retried(self, engine: AlignmentEngine,
                                                 session_factory,
                                                 scheduler: ManualScheduler,
                                                 callbacks: AlignmentCallbacks) -> None:
        """A backend crash on restart goes through backoff and eventually gives up."""
        engine.start()
        session_factory.start_errors.extend(RuntimeError("backend crashed") for _ in range(5))

        session_factory.latest.end()
        scheduler.run_until_idle()

        errors = [c.args[0] for c in callbacks.on_error.call_args_list]
        assert [type(e) for e in errors] == [TransientSessionError] * 5 + [RecoveryExhaustedError]
        assert errors[0].retryable
        assert engine.state == AlignmentState.STOPPED
        assert engine.session is None
        assert scheduler.pending == 0
        assert len(session_factory.sessions) == 6

    def test_unexpected_start_failure_recovers(self, engine: AlignmentEngine,
                                               session_factory,
                                               scheduler: ManualScheduler) -> None:
        engine.start()
        session_factory.start_errors.append(RuntimeError("backend crashed"))
        session_factory.latest.end()

        scheduler.advance(500)
        assert engine.state == AlignmentState.RESTARTING
        scheduler.advance(1000)
        assert engine.state == AlignmentState.LISTENING
        assert session_factory.latest.started
